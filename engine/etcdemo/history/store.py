"""
Append-only history log.

Workers and the nemesis append invocations and completions as they happen;
the checker reads the finished log. Appends are atomic and stamp each record
with its index and a monotonic time relative to the start of the run.
"""

import threading
import time
from collections.abc import Callable, Iterable, Iterator, Sequence
from pathlib import Path

from etcdemo.history.models import Op, OpType
from etcdemo.logging import get_logger

logger = get_logger(__name__)


class History:
    """
    Ordered, append-only sequence of operations across all processes and keys.
    """

    def __init__(self, clock: Callable[[], int] = time.monotonic_ns) -> None:
        self._clock = clock
        self._start = clock()
        self._ops: list[Op] = []
        self._lock = threading.Lock()

    def append(self, op: Op) -> Op:
        """
        Stamp and append an operation.

        Args:
            op: Unstamped operation

        Returns:
            The stamped operation as recorded
        """
        with self._lock:
            stamped = op.model_copy(
                update={"index": len(self._ops), "time": self._clock() - self._start}
            )
            self._ops.append(stamped)
        return stamped

    @property
    def ops(self) -> list[Op]:
        """Snapshot of the recorded operations."""
        with self._lock:
            return list(self._ops)

    def __len__(self) -> int:
        return len(self._ops)

    def __iter__(self) -> Iterator[Op]:
        return iter(self.ops)

    def to_jsonl(self, path: Path) -> Path:
        """Write the history as JSON lines."""
        return write_jsonl(self.ops, path)

    @classmethod
    def from_ops(cls, ops: Iterable[Op]) -> "History":
        """Build a history from already stamped operations (e.g. loaded from disk)."""
        history = cls()
        history._ops = list(ops)
        return history


def write_jsonl(ops: Iterable[Op], path: Path) -> Path:
    """Write operations to `path`, one JSON object per line."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        for op in ops:
            f.write(op.model_dump_json() + "\n")
    return path


def read_jsonl(path: Path) -> list[Op]:
    """Load operations written by `write_jsonl`."""
    ops = []
    with open(path) as f:
        for line in f:
            if line.strip():
                ops.append(Op.model_validate_json(line))
    return ops


def pair_ops(ops: Sequence[Op]) -> list[tuple[Op, Op | None]]:
    """
    Match each invocation with its completion.

    Invocations still outstanding at the end of the history are paired with
    None. Completions without an invocation are skipped with a warning.

    Returns:
        (invocation, completion) pairs in invocation order
    """
    pending: dict[int | str, int] = {}
    pairs: list[tuple[Op, Op | None]] = []

    for op in ops:
        if op.is_invoke:
            pending[op.process] = len(pairs)
            pairs.append((op, None))
            continue

        slot = pending.pop(op.process, None)
        if slot is None:
            logger.warning("Completion without invocation: %s", op.describe())
            continue
        pairs[slot] = (pairs[slot][0], op)

    return pairs


def check_well_formed(ops: Sequence[Op]) -> list[str]:
    """
    Verify every process alternates invoke and terminal completion.

    Returns:
        Human-readable problems, empty when the history is well formed
    """
    problems: list[str] = []
    outstanding: dict[int | str, Op] = {}

    for op in ops:
        if op.is_invoke:
            prior = outstanding.get(op.process)
            if prior is not None:
                problems.append(
                    f"process {op.process} invoked op {op.index} while op {prior.index} "
                    "was still outstanding"
                )
            outstanding[op.process] = op
            continue

        prior = outstanding.pop(op.process, None)
        if prior is None:
            problems.append(f"process {op.process} completed op {op.index} without invoking")
        elif prior.f != op.f or prior.key != op.key:
            problems.append(
                f"process {op.process} completion {op.index} does not match invocation {prior.index}"
            )

    return problems


def split_by_key(ops: Iterable[Op]) -> dict[int, list[Op]]:
    """
    Partition a history into independent per-key sub-histories.

    Operations without a key (nemesis events) are copied into every
    sub-history so faults stay visible next to client operations.
    """
    keyed: dict[int, list[Op]] = {}
    ordered: list[Op] = list(ops)

    for op in ordered:
        if op.key is not None:
            keyed.setdefault(op.key, [])

    for op in ordered:
        if op.key is None:
            for sub in keyed.values():
                sub.append(op)
        else:
            keyed[op.key].append(op)

    return dict(sorted(keyed.items()))


def completions(ops: Iterable[Op], type: OpType | None = None) -> list[Op]:
    """All non-invoke records, optionally restricted to one completion type."""
    return [op for op in ops if not op.is_invoke and (type is None or op.type == type)]
