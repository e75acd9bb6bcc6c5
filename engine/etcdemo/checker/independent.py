"""
Independent per-key checking.

Keys share no state, so a history over many keys is linearizable iff each
key's sub-history is. Sub-histories are checked serially or across a process
pool.
"""

from collections.abc import Sequence
from concurrent.futures import ProcessPoolExecutor, as_completed

from etcdemo.checker.linear import check_linearizable
from etcdemo.checker.model import CASRegister, Model
from etcdemo.checker.models import IndependentResult, LinearResult, Validity, merge_valid
from etcdemo.history.models import Op
from etcdemo.history.store import split_by_key
from etcdemo.logging import get_logger

logger = get_logger(__name__)


def _check_key(
    key: int, ops: list[Op], model: Model, time_limit_s: float | None
) -> tuple[int, LinearResult]:
    """Process pool entry point; must stay at module level to be picklable."""
    return key, check_linearizable(ops, model=model, time_limit_s=time_limit_s)


class IndependentChecker:
    """Checks every key of a history independently and aggregates verdicts."""

    def __init__(
        self,
        model: Model | None = None,
        time_limit_s: float | None = None,
        workers: int = 1,
    ) -> None:
        """
        Initialize checker.

        Args:
            model: Per-key model (default: CAS register starting empty)
            time_limit_s: Search budget per key
            workers: Process pool size; 1 checks in-process
        """
        self.model = model or CASRegister()
        self.time_limit_s = time_limit_s
        self.workers = max(1, workers)

    def check(self, ops: Sequence[Op]) -> IndependentResult:
        sub_histories = split_by_key(ops)
        results: dict[int, LinearResult] = {}

        if self.workers == 1 or len(sub_histories) <= 1:
            for key, sub in sub_histories.items():
                _, results[key] = _check_key(key, sub, self.model, self.time_limit_s)
        else:
            with ProcessPoolExecutor(max_workers=self.workers) as executor:
                futures = [
                    executor.submit(_check_key, key, sub, self.model, self.time_limit_s)
                    for key, sub in sub_histories.items()
                ]
                for future in as_completed(futures):
                    key, result = future.result()
                    results[key] = result

        results = dict(sorted(results.items()))
        failures = [key for key, r in results.items() if r.valid == Validity.INVALID]
        unknown = [key for key, r in results.items() if r.valid == Validity.UNKNOWN]
        valid = merge_valid([r.valid for r in results.values()])

        logger.info(
            "Checked %d keys: %s (%d invalid, %d unknown)",
            len(results),
            valid.value,
            len(failures),
            len(unknown),
        )
        for key in failures:
            logger.warning("Key %d is not linearizable: %s", key, results[key].message)

        return IndependentResult(
            valid=valid, results=results, failures=failures, unknown=unknown
        )
