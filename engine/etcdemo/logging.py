"""
Logging configuration for the etcdemo harness.

Provides consistent logging format across all modules with:
- Human-readable output for interactive runs
- JSON-ish single line output for log collection
- Run ID tracking so concurrent worker logs can be tied to a test run
"""

import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime

# Context variable for tracking run IDs across worker tasks
current_run_id: ContextVar[str | None] = ContextVar("current_run_id", default=None)


class HarnessFormatter(logging.Formatter):
    """
    Custom formatter for harness logs.

    Includes timestamp, level, module, run_id (if set), and message.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.timestamp = datetime.now(UTC).isoformat()

        run_id = current_run_id.get()
        record.run_id = f"[{run_id}] " if run_id else ""

        return super().format(record)


def setup_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """
    Configure logging for the harness.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output one JSON object per line

    Returns:
        Configured root logger
    """
    root = logging.getLogger()
    root.handlers.clear()

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(numeric_level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)

    if json_output:
        fmt = (
            '{"timestamp": "%(timestamp)s", "level": "%(levelname)s", '
            '"module": "%(name)s", "run_id": "%(run_id)s", "message": "%(message)s"}'
        )
    else:
        fmt = "%(timestamp)s | %(levelname)-8s | %(name)s | %(run_id)s%(message)s"

    handler.setFormatter(HarnessFormatter(fmt))
    root.addHandler(handler)

    # One line per request at INFO is far too noisy under load
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def set_run_id(run_id: str) -> None:
    """Set the current run ID for log correlation."""
    current_run_id.set(run_id)


def clear_run_id() -> None:
    """Clear the current run ID."""
    current_run_id.set(None)
