"""
Sequential models used by the linearizability checker.

A model is a pure state machine: `step` never mutates the state it is given,
and states must be hashable so explored configurations can be memoized.
"""

from abc import ABC, abstractmethod
from collections.abc import Hashable
from typing import Any

from etcdemo.history.models import OpFunction


class Model(ABC):
    """Sequential model of a single object."""

    @abstractmethod
    def init(self) -> Hashable:
        """Initial state."""
        pass

    @abstractmethod
    def step(self, state: Hashable, f: OpFunction, value: Any) -> tuple[bool, Hashable]:
        """
        Apply one completed operation.

        Args:
            state: Current state
            f: Operation function
            value: Completed value (observed value for reads)

        Returns:
            (legal, next_state)
        """
        pass

    def describe(self, state: Hashable) -> str:
        return repr(state)

    def produces(self, f: OpFunction, value: Any) -> Any:
        """
        Value an operation leaves behind for others to observe, or None.

        Witness shrinking never drops an operation whose produced value is
        consumed by another remaining operation.
        """
        return None

    def consumes(self, f: OpFunction, value: Any) -> Any:
        """Value an operation needs to observe, or None."""
        return None


class CASRegister(Model):
    """
    A compare-and-set register.

    State is the current value, or None before the first successful write.
    """

    def __init__(self, initial: int | None = None) -> None:
        self._initial = initial

    def init(self) -> int | None:
        return self._initial

    def step(self, state: Any, f: OpFunction, value: Any) -> tuple[bool, Any]:
        if f == OpFunction.READ:
            return value == state, state
        if f == OpFunction.WRITE:
            return True, value
        if f == OpFunction.CAS:
            old, new = value
            if state == old:
                return True, new
            return False, state
        return False, state

    def produces(self, f: OpFunction, value: Any) -> Any:
        """Value this operation leaves in the register, if it applies."""
        if f == OpFunction.WRITE:
            return value
        if f == OpFunction.CAS:
            return value[1]
        return None

    def consumes(self, f: OpFunction, value: Any) -> Any:
        """Value this operation requires the register to hold."""
        if f == OpFunction.READ:
            return value
        if f == OpFunction.CAS:
            return value[0]
        return None
