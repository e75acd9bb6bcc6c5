"""
History checking.

Provides:
- The CAS-register model
- Single-key linearizability search with witness extraction
- The independent per-key checker
- Performance summary and plain-text timelines
"""

from collections.abc import Sequence

from etcdemo.checker.independent import IndependentChecker
from etcdemo.checker.linear import check_linearizable
from etcdemo.checker.model import CASRegister, Model
from etcdemo.checker.models import (
    IndependentResult,
    LinearResult,
    RunAnalysis,
    Validity,
    merge_valid,
)
from etcdemo.checker.perf import nemesis_windows, perf_summary
from etcdemo.checker.timeline import render_timeline
from etcdemo.history.models import Op
from etcdemo.history.store import check_well_formed


def analyze(
    ops: Sequence[Op],
    time_limit_s: float | None = None,
    workers: int = 1,
) -> RunAnalysis:
    """
    Run every checker over a finished history.

    A history that is not well formed cannot be judged and is invalid.
    """
    problems = check_well_formed(ops)
    linear = IndependentChecker(time_limit_s=time_limit_s, workers=workers).check(ops)
    valid = linear.valid if not problems else Validity.INVALID
    return RunAnalysis(
        valid=valid,
        linear=linear,
        perf=perf_summary(ops),
        well_formed=not problems,
        problems=problems,
    )


__all__ = [
    "analyze",
    # Model
    "CASRegister",
    "Model",
    # Linearizability
    "IndependentChecker",
    "check_linearizable",
    # Results
    "IndependentResult",
    "LinearResult",
    "RunAnalysis",
    "Validity",
    "merge_valid",
    # Reporting
    "nemesis_windows",
    "perf_summary",
    "render_timeline",
]
