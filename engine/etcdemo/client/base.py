"""
Client interface.

Defines the contract between workers and a store-specific client adapter.
"""

from abc import ABC, abstractmethod
from enum import Enum

from etcdemo.history.models import Op, OpFunction, OpType


class ClientState(str, Enum):
    """Adapter lifecycle."""

    UNOPENED = "unopened"
    OPEN = "open"
    CLOSED = "closed"


def classify_timeout(f: OpFunction) -> OpType:
    """
    Completion type for an operation whose request timed out.

    A read that timed out cannot have changed state, so it is a definite
    failure. A write or cas may have been applied before the timeout was
    observed, so its outcome is indeterminate.
    """
    return OpType.FAIL if f == OpFunction.READ else OpType.INFO


class Client(ABC):
    """
    Abstract base class for store clients.

    A configured, unopened instance acts as a template: `open` returns a new
    instance bound to one node, used by exactly one worker process.
    """

    @abstractmethod
    def open(self, node: str) -> "Client":
        """
        Bind a fresh client to a node.

        Args:
            node: Node hostname

        Returns:
            New client in the open state. No network call is made.
        """
        pass

    @abstractmethod
    async def invoke(self, op: Op) -> Op:
        """
        Execute an invocation against the store.

        Args:
            op: Invocation with f in {read, write, cas}

        Returns:
            Unstamped completion (ok, fail or info)

        Raises:
            EtcdemoError: Fatal errors that cannot be classified
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        pass
