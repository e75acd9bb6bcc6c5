"""
Performance summary of a history.

Counts, latency quantiles and throughput for client operations, and the
windows during which a partition was in effect.
"""

from collections.abc import Sequence
from typing import Any

import pandas as pd

from etcdemo.history.models import NEMESIS, Op, OpFunction, OpType
from etcdemo.history.store import pair_ops

NS_PER_MS = 1_000_000
NS_PER_S = 1_000_000_000
QUANTILES = (0.5, 0.95, 0.99)


def _latency_frame(ops: Sequence[Op]) -> pd.DataFrame:
    rows = []
    for invoke, completion in pair_ops([op for op in ops if op.is_client]):
        if completion is None:
            continue
        rows.append(
            {
                "f": invoke.f.value,
                "type": completion.type.value,
                "invoked_ns": invoke.time,
                "completed_ns": completion.time,
                "latency_ms": (completion.time - invoke.time) / NS_PER_MS,
            }
        )
    return pd.DataFrame(rows, columns=["f", "type", "invoked_ns", "completed_ns", "latency_ms"])


def nemesis_windows(ops: Sequence[Op]) -> list[dict[str, float | None]]:
    """
    Intervals (in seconds since run start) during which a partition was open.

    A window opens at a completed start and closes at the next completed
    stop; a window still open at the end of the history has stop None.
    Completions carrying an error (interrupted events) are ignored.
    """
    windows: list[dict[str, float | None]] = []
    opened: float | None = None

    for op in ops:
        if op.process != NEMESIS or op.is_invoke or op.error:
            continue
        if op.f == OpFunction.START and opened is None:
            opened = op.time / NS_PER_S
        elif op.f == OpFunction.STOP and opened is not None:
            windows.append({"start_s": opened, "stop_s": op.time / NS_PER_S})
            opened = None

    if opened is not None:
        windows.append({"start_s": opened, "stop_s": None})
    return windows


def perf_summary(ops: Sequence[Op]) -> dict[str, Any]:
    """
    Summarize a run.

    Returns:
        JSON-serializable dict with keys counts, latency_ms, throughput and
        nemesis
    """
    df = _latency_frame(ops)

    counts: dict[str, dict[str, int]] = {}
    latency: dict[str, dict[str, float]] = {}
    throughput = {"duration_s": 0.0, "ok_per_s": 0.0, "total_per_s": 0.0}

    if not df.empty:
        grouped = df.groupby(["f", "type"]).size()
        for (f, type_), n in grouped.items():
            counts.setdefault(f, {})[type_] = int(n)

        for f, group in df.groupby("f"):
            stats = {"count": int(len(group)), "mean": float(group["latency_ms"].mean())}
            for q in QUANTILES:
                stats[f"p{int(q * 100)}"] = float(group["latency_ms"].quantile(q))
            stats["max"] = float(group["latency_ms"].max())
            latency[f] = stats

        span_ns = int(df["completed_ns"].max() - df["invoked_ns"].min())
        duration_s = span_ns / NS_PER_S
        throughput["duration_s"] = duration_s
        if duration_s > 0:
            ok = int((df["type"] == OpType.OK.value).sum())
            throughput["ok_per_s"] = ok / duration_s
            throughput["total_per_s"] = len(df) / duration_s

    return {
        "counts": counts,
        "latency_ms": latency,
        "throughput": throughput,
        "nemesis": nemesis_windows(ops),
    }
