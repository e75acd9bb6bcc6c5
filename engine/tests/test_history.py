"""
Tests for the operation model and the history log.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from etcdemo.history import (
    NEMESIS,
    ErrorKind,
    History,
    Op,
    OpFunction,
    OpType,
    check_well_formed,
    completions,
    pair_ops,
    read_jsonl,
    split_by_key,
    write_jsonl,
)

R, W, CAS = OpFunction.READ, OpFunction.WRITE, OpFunction.CAS


class TestOp:
    """Tests for the Op record."""

    def test_complete_keeps_identity(self) -> None:
        invoke = Op(process=3, type=OpType.INVOKE, f=CAS, key=2, value=[1, 2], index=7, time=5)

        done = invoke.complete(OpType.FAIL, error=ErrorKind.NOT_FOUND)

        assert (done.process, done.f, done.key, done.value) == (3, CAS, 2, [1, 2])
        assert done.type == OpType.FAIL
        assert done.error == "not-found"
        assert (done.index, done.time) == (-1, -1)

    def test_complete_read_replaces_value(self) -> None:
        invoke = Op(process=0, type=OpType.INVOKE, f=R, key=0)

        assert invoke.complete(OpType.OK, value=4, keep_value=False).value == 4
        assert invoke.complete(OpType.OK, value=None, keep_value=False).value is None

    def test_frozen(self) -> None:
        op = Op(process=0, type=OpType.INVOKE, f=W, value=1)
        with pytest.raises(ValidationError):
            op.value = 2

    def test_client_vs_nemesis(self) -> None:
        assert Op(process=0, type=OpType.INVOKE, f=R).is_client
        assert not Op(process=NEMESIS, type=OpType.INVOKE, f=OpFunction.START).is_client

    def test_describe(self) -> None:
        op = Op(process=3, type=OpType.INFO, f=W, value=2, error="timeout")
        assert op.describe() == "p3 info write 2 (timeout)"
        assert Op(process=NEMESIS, type=OpType.INVOKE, f=OpFunction.STOP).describe() == (
            "nemesis invoke stop"
        )


class TestHistory:
    """Tests for the append-only log."""

    def test_append_stamps_index_and_time(self) -> None:
        ticks = iter([100, 150, 175])
        history = History(clock=lambda: next(ticks))

        first = history.append(Op(process=0, type=OpType.INVOKE, f=R, key=0))
        second = history.append(first.complete(OpType.OK, value=None, keep_value=False))

        assert (first.index, first.time) == (0, 50)
        assert (second.index, second.time) == (1, 75)
        assert len(history) == 2
        assert list(history) == [first, second]

    def test_ops_is_a_snapshot(self) -> None:
        history = History()
        snapshot = history.ops
        history.append(Op(process=0, type=OpType.INVOKE, f=R))

        assert snapshot == []
        assert len(history.ops) == 1

    def test_jsonl_round_trip(self, tmp_path: Path, builder) -> None:
        h = builder()
        h.ok(h.invoke(0, CAS, [1, 2]))
        h.info(h.invoke(NEMESIS, OpFunction.START), value={"cut-off": {"n1": ["n2"]}})
        h.ok(h.invoke(1, R), value=None)

        path = write_jsonl(h.ops, tmp_path / "run" / "history.jsonl")

        assert read_jsonl(path) == h.ops
        assert len(path.read_text().splitlines()) == 6

    def test_from_ops(self, builder) -> None:
        h = builder()
        h.ok(h.invoke(0, W, 1))

        assert History.from_ops(h.ops).ops == h.ops


class TestPairing:
    """Tests for pair_ops and check_well_formed."""

    def test_pairs_in_invocation_order(self, builder) -> None:
        h = builder()
        a = h.invoke(0, W, 1)
        b = h.invoke(1, R)
        b_done = h.ok(b, value=1)
        a_done = h.ok(a)
        c = h.invoke(2, W, 3)

        assert pair_ops(h.ops) == [(a, a_done), (b, b_done), (c, None)]

    def test_orphan_completion_skipped(self) -> None:
        orphan = Op(process=4, type=OpType.OK, f=W, value=1)
        assert pair_ops([orphan]) == []

    def test_well_formed(self, builder) -> None:
        h = builder()
        h.ok(h.invoke(0, W, 1))
        h.info(h.invoke(NEMESIS, OpFunction.START), value="cut")
        h.invoke(1, R)

        assert check_well_formed(h.ops) == []

    def test_double_invoke(self, builder) -> None:
        h = builder()
        h.invoke(0, W, 1)
        h.invoke(0, W, 2)

        problems = check_well_formed(h.ops)

        assert problems == ["process 0 invoked op 1 while op 0 was still outstanding"]

    def test_completion_without_invoke(self) -> None:
        problems = check_well_formed([Op(process=2, type=OpType.OK, f=W, value=1, index=0)])
        assert problems == ["process 2 completed op 0 without invoking"]

    def test_mismatched_completion(self) -> None:
        ops = [
            Op(process=0, type=OpType.INVOKE, f=W, key=0, value=1, index=0),
            Op(process=0, type=OpType.OK, f=R, key=0, value=1, index=1),
        ]
        assert "does not match" in check_well_formed(ops)[0]


class TestSplitByKey:
    """Tests for per-key sub-histories."""

    def test_split_copies_nemesis_everywhere(self, builder) -> None:
        h = builder()
        h.ok(h.invoke(0, W, 1, key=1))
        start = h.invoke(NEMESIS, OpFunction.START)
        h.ok(h.invoke(1, W, 2, key=0))

        subs = split_by_key(h.ops)

        assert list(subs) == [0, 1]
        assert start in subs[0] and start in subs[1]
        assert [op.key for op in subs[1]] == [1, 1, None]
        assert [op.key for op in subs[0]] == [None, 0, 0]

    def test_completions_filter(self, builder) -> None:
        h = builder()
        h.ok(h.invoke(0, W, 1))
        h.fail(h.invoke(1, CAS, [0, 1]))

        assert len(completions(h.ops)) == 2
        assert [op.f for op in completions(h.ops, OpType.FAIL)] == [CAS]
