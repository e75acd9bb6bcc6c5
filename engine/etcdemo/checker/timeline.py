"""
Plain-text timeline of a single key's history.

One row per history record, one column per process. A leading 'net' column
shows '#' while a partition is in effect.
"""

from collections.abc import Sequence

from etcdemo.history.models import NEMESIS, Op, OpFunction, OpType

PARTITIONED = "#"


def _cell(op: Op) -> str:
    text = f"{op.type.value} {op.f.value}"
    if op.value is not None:
        text += f" {op.value}"
    if op.error:
        text += f" ({op.error})"
    return text


def render_timeline(ops: Sequence[Op], title: str | None = None) -> str:
    """
    Render records as a fixed-width table.

    Args:
        ops: Records of one key (nemesis records included)
        title: Optional first line

    Returns:
        Text ending with a newline
    """
    clients = sorted({op.process for op in ops if op.is_client})
    processes: list[int | str] = list(clients)
    if any(op.process == NEMESIS for op in ops):
        processes.append(NEMESIS)

    headers = ["index", "time_ms", "net"] + [
        f"p{p}" if isinstance(p, int) else str(p) for p in processes
    ]
    column = {p: i + 3 for i, p in enumerate(processes)}

    rows: list[list[str]] = []
    partitioned = False
    for op in ops:
        # Interrupted fault events may or may not have been applied
        if op.process == NEMESIS and op.type == OpType.INFO and not op.error:
            partitioned = op.f == OpFunction.START

        row = [""] * len(headers)
        row[0] = str(op.index)
        row[1] = f"{op.time / 1_000_000:.3f}"
        row[2] = PARTITIONED if partitioned else ""
        row[column[op.process]] = _cell(op)
        rows.append(row)

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    def fmt(cells: list[str]) -> str:
        return "  ".join(cell.ljust(widths[i]) for i, cell in enumerate(cells)).rstrip()

    lines = []
    if title:
        lines.append(title)
    lines.append(fmt(headers))
    lines.append(fmt(["-" * w for w in widths]))
    lines.extend(fmt(row) for row in rows)
    return "\n".join(lines) + "\n"
