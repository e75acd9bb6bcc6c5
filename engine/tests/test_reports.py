"""
Tests for the performance summary and plain-text timelines.
"""

from etcdemo.checker.perf import nemesis_windows, perf_summary
from etcdemo.checker.timeline import render_timeline
from etcdemo.history.models import NEMESIS, OpFunction

R, W, CAS = OpFunction.READ, OpFunction.WRITE, OpFunction.CAS


def sample_history(builder):
    h = builder()
    h.ok(h.invoke(0, W, 1))
    start = h.invoke(NEMESIS, OpFunction.START)
    h.info(start, value={"cut-off": {"n1": ["n2"], "n2": ["n1"]}})
    h.ok(h.invoke(1, R), value=1)
    h.fail(h.invoke(0, CAS, [2, 3]))
    h.info(h.invoke(1, W, 4), error="timeout")
    h.info(h.invoke(NEMESIS, OpFunction.STOP), value="fully connected")
    h.ok(h.invoke(6, R), value=4)
    return h


class TestPerfSummary:
    """Tests for perf_summary."""

    def test_empty_history(self) -> None:
        perf = perf_summary([])

        assert perf["counts"] == {}
        assert perf["latency_ms"] == {}
        assert perf["throughput"]["ok_per_s"] == 0.0
        assert perf["nemesis"] == []

    def test_counts_by_function_and_type(self, builder) -> None:
        perf = perf_summary(sample_history(builder).ops)

        assert perf["counts"] == {
            "cas": {"fail": 1},
            "read": {"ok": 2},
            "write": {"info": 1, "ok": 1},
        }

    def test_latency_quantiles(self, builder) -> None:
        perf = perf_summary(sample_history(builder).ops)

        # Every completion directly follows its invocation: 1ms apart
        read = perf["latency_ms"]["read"]
        assert read["count"] == 2
        assert read["p50"] == 1.0
        assert read["max"] == 1.0
        assert set(read) == {"count", "mean", "p50", "p95", "p99", "max"}

    def test_throughput(self, builder) -> None:
        perf = perf_summary(sample_history(builder).ops)

        throughput = perf["throughput"]
        assert throughput["duration_s"] > 0
        assert throughput["total_per_s"] > throughput["ok_per_s"] > 0

    def test_values_are_plain_python(self, builder) -> None:
        perf = perf_summary(sample_history(builder).ops)

        assert type(perf["counts"]["read"]["ok"]) is int
        assert type(perf["latency_ms"]["read"]["mean"]) is float


class TestNemesisWindows:
    """Tests for partition windows."""

    def test_closed_window(self, builder) -> None:
        windows = nemesis_windows(sample_history(builder).ops)

        assert len(windows) == 1
        assert windows[0]["start_s"] < windows[0]["stop_s"]

    def test_open_window(self, builder) -> None:
        h = builder()
        h.info(h.invoke(NEMESIS, OpFunction.START), value="cut")

        assert nemesis_windows(h.ops) == [{"start_s": 0.002, "stop_s": None}]

    def test_interrupted_start_opens_no_window(self, builder) -> None:
        h = builder()
        h.info(h.invoke(NEMESIS, OpFunction.START), error="interrupted")

        assert nemesis_windows(h.ops) == []


class TestTimeline:
    """Tests for render_timeline."""

    def test_columns_per_process(self, builder) -> None:
        text = render_timeline(sample_history(builder).ops, title="key 0")
        lines = text.splitlines()

        assert lines[0] == "key 0"
        assert lines[1].split() == ["index", "time_ms", "net", "p0", "p1", "p6", "nemesis"]
        assert text.endswith("\n")

    def test_one_row_per_record(self, builder) -> None:
        h = sample_history(builder)
        lines = render_timeline(h.ops).splitlines()

        # header and rule, then the records
        assert len(lines) == 2 + len(h.ops)

    def test_cells_describe_ops(self, builder) -> None:
        text = render_timeline(sample_history(builder).ops)

        assert "invoke cas [2, 3]" in text
        assert "info write 4 (timeout)" in text
        assert "ok read 4" in text

    def test_partition_marked(self, builder) -> None:
        lines = render_timeline(sample_history(builder).ops).splitlines()[2:]
        marked = [line.split()[0] for line in lines if line.split()[2:3] == ["#"]]

        # From the start completion up to (not including) the stop completion
        assert marked == [str(i) for i in range(3, 11)]

    def test_interrupted_start_not_marked(self, builder) -> None:
        h = builder()
        h.ok(h.invoke(0, W, 1))
        h.info(h.invoke(NEMESIS, OpFunction.START), error="interrupted")
        h.ok(h.invoke(1, R), value=1)

        lines = render_timeline(h.ops).splitlines()[2:]

        assert "info start (interrupted)" in "\n".join(lines)
        assert not any(line.split()[2:3] == ["#"] for line in lines)
