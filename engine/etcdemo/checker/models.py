"""
Checker result models.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from etcdemo.history.models import Op


class Validity(str, Enum):
    """Verdict of a check."""

    VALID = "valid"
    INVALID = "invalid"
    UNKNOWN = "unknown"  # Search did not finish within its budget


def merge_valid(verdicts: list[Validity]) -> Validity:
    """
    Combine verdicts: any invalid wins, then any unknown, else valid.

    An empty list is valid.
    """
    if Validity.INVALID in verdicts:
        return Validity.INVALID
    if Validity.UNKNOWN in verdicts:
        return Validity.UNKNOWN
    return Validity.VALID


class LinearResult(BaseModel):
    """Result of checking one sub-history for linearizability."""

    valid: Validity
    op_count: int = Field(default=0, description="Operations considered by the search")
    configs_explored: int = Field(default=0, description="Distinct configurations visited")
    elapsed_s: float = 0.0
    failed_op: Op | None = Field(
        default=None,
        description="Completed op that could not be linearized in the deepest explored configuration",
    )
    witness: list[Op] = Field(
        default_factory=list,
        description="Small non-linearizable sub-history (invocations and completions)",
    )
    message: str = ""


class IndependentResult(BaseModel):
    """Per-key linearizability results and their aggregate."""

    valid: Validity
    results: dict[int, LinearResult] = Field(default_factory=dict)
    failures: list[int] = Field(default_factory=list, description="Keys found invalid")
    unknown: list[int] = Field(default_factory=list, description="Keys that timed out")


class RunAnalysis(BaseModel):
    """Everything the analysis of one run produces."""

    valid: Validity
    linear: IndependentResult
    perf: dict[str, Any] = Field(default_factory=dict)
    well_formed: bool = True
    problems: list[str] = Field(default_factory=list)
