"""
Tests for per-key checking and verdict aggregation.
"""

import pytest

from etcdemo.checker import IndependentChecker, Validity, analyze, merge_valid
from etcdemo.history.models import NEMESIS, OpFunction

R, W = OpFunction.READ, OpFunction.WRITE


def two_key_history(builder, bad_key: int | None = None):
    """Keys 0 and 1 with interleaved ops; `bad_key` gets a stale read."""
    h = builder()
    h.info(h.invoke(NEMESIS, OpFunction.START), value={"cut-off": {}})
    for key in (0, 1):
        h.ok(h.invoke(key, W, 1, key=key))
    for key in (0, 1):
        observed = 2 if key == bad_key else 1
        h.ok(h.invoke(key + 2, R, key=key), value=observed)
    h.info(h.invoke(NEMESIS, OpFunction.STOP), value="fully connected")
    return h


class TestMergeValid:
    """Tests for verdict aggregation."""

    @pytest.mark.parametrize(
        "verdicts,expected",
        [
            ([], Validity.VALID),
            ([Validity.VALID, Validity.VALID], Validity.VALID),
            ([Validity.VALID, Validity.UNKNOWN], Validity.UNKNOWN),
            ([Validity.UNKNOWN, Validity.INVALID], Validity.INVALID),
        ],
    )
    def test_merge(self, verdicts, expected) -> None:
        assert merge_valid(verdicts) == expected


class TestIndependentChecker:
    """Tests for IndependentChecker."""

    def test_all_keys_valid(self, builder) -> None:
        result = IndependentChecker().check(two_key_history(builder).ops)

        assert result.valid == Validity.VALID
        assert sorted(result.results) == [0, 1]
        assert result.failures == []

    def test_one_bad_key_invalidates(self, builder) -> None:
        result = IndependentChecker().check(two_key_history(builder, bad_key=1).ops)

        assert result.valid == Validity.INVALID
        assert result.failures == [1]
        assert result.results[0].valid == Validity.VALID
        assert result.results[1].witness

    def test_keys_do_not_interact(self, builder) -> None:
        h = builder()
        h.ok(h.invoke(0, W, 3, key=0))
        # A read of 3 on key 1 would be legal only if keys shared state
        h.ok(h.invoke(1, R, key=1), value=3)

        result = IndependentChecker().check(h.ops)

        assert result.failures == [1]

    def test_process_pool_matches_serial(self, builder) -> None:
        ops = two_key_history(builder, bad_key=0).ops

        serial = IndependentChecker().check(ops)
        parallel = IndependentChecker(workers=2).check(ops)

        assert parallel.valid == serial.valid == Validity.INVALID
        assert parallel.failures == serial.failures == [0]

    def test_timeout_reports_unknown_keys(self, builder) -> None:
        h = builder()
        for i in range(1000):
            h.ok(h.invoke(i % 5, W, i % 5, key=7))

        result = IndependentChecker(time_limit_s=0).check(h.ops)

        assert result.valid == Validity.UNKNOWN
        assert result.unknown == [7]


class TestAnalyze:
    """Tests for the full post-run analysis."""

    def test_valid_run(self, builder) -> None:
        analysis = analyze(two_key_history(builder).ops)

        assert analysis.valid == Validity.VALID
        assert analysis.well_formed
        assert analysis.perf["counts"]["write"]["ok"] == 2

    def test_malformed_history_is_invalid(self, builder) -> None:
        h = builder()
        h.invoke(0, W, 1)
        h.invoke(0, W, 2)

        analysis = analyze(h.ops)

        assert analysis.valid == Validity.INVALID
        assert not analysis.well_formed
        assert "still outstanding" in analysis.problems[0]
