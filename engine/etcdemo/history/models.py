"""
Operation model.

An operation is recorded twice: once when a process invokes it and once when
it completes (ok, fail or info). Both records share process, f and key.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

NEMESIS = "nemesis"


class OpType(str, Enum):
    """Operation record type."""

    INVOKE = "invoke"
    OK = "ok"  # Took effect
    FAIL = "fail"  # Definitely did not take effect
    INFO = "info"  # May or may not have taken effect


class OpFunction(str, Enum):
    """What an operation does."""

    READ = "read"
    WRITE = "write"
    CAS = "cas"
    # Nemesis
    START = "start"
    STOP = "stop"


class ErrorKind(str, Enum):
    """Error tags attached to classified client completions."""

    TIMEOUT = "timeout"
    NOT_FOUND = "not-found"
    FATAL = "fatal"
    INTERRUPTED = "interrupted"


class Op(BaseModel):
    """
    A single history record.

    Immutable; completions are derived from invocations with `complete`.
    """

    model_config = ConfigDict(frozen=True)

    process: int | str = Field(..., description="Logical process, or 'nemesis'")
    type: OpType
    f: OpFunction
    key: int | None = Field(default=None, description="Independent key, None for nemesis ops")
    value: Any = None
    error: str | None = None
    time: int = Field(default=-1, description="Nanoseconds since run start")
    index: int = Field(default=-1, description="Position in history")

    @property
    def is_invoke(self) -> bool:
        return self.type == OpType.INVOKE

    @property
    def is_client(self) -> bool:
        """True for operations issued by worker processes."""
        return isinstance(self.process, int)

    def complete(
        self,
        type: OpType,
        value: Any = None,
        error: ErrorKind | str | None = None,
        keep_value: bool = True,
    ) -> "Op":
        """
        Build the completion record for this invocation.

        Args:
            type: Completion type
            value: Observed value (replaces the invocation's value when given)
            error: Optional error tag
            keep_value: Keep the invocation's value when `value` is None

        Returns:
            New unstamped Op
        """
        if isinstance(error, ErrorKind):
            error = error.value
        if value is None and keep_value:
            value = self.value
        return self.model_copy(
            update={"type": type, "value": value, "error": error, "time": -1, "index": -1}
        )

    def describe(self) -> str:
        """Short human-readable form, e.g. 'p3 ok cas [1, 2]'."""
        label = f"p{self.process}" if self.is_client else str(self.process)
        text = f"{label} {self.type.value} {self.f.value}"
        if self.value is not None:
            text += f" {self.value}"
        if self.error:
            text += f" ({self.error})"
        return text
