"""
Run context for tracking test runs and offline checks.

Provides unique run IDs and context management.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import uuid4


def generate_run_id(prefix: str = "run") -> str:
    """
    Generate a unique run ID.

    Format: {prefix}_{timestamp}_{uuid8}
    Example: test_20240115_143022_a1b2c3d4

    Args:
        prefix: ID prefix (e.g., "test", "check")

    Returns:
        Unique run ID string.
    """
    timestamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
    short_uuid = uuid4().hex[:8]
    return f"{prefix}_{timestamp}_{short_uuid}"


class RunType(str, Enum):
    """Type of run."""

    TEST = "test"  # Workload and nemesis against a live cluster
    CHECK = "check"  # Re-analysis of a stored history


@dataclass
class RunContext:
    """
    Context for a test run or an offline check.

    Tracks run metadata, configuration snapshot, and artefact paths.
    """

    # Identification
    run_id: str
    run_type: RunType
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    # Configuration snapshot (for reproducibility)
    config_snapshot: dict[str, Any] = field(default_factory=dict)
    source_history: Path | None = None

    # Paths
    artefacts_dir: Path | None = None

    # Status
    is_completed: bool = False
    completed_at: datetime | None = None
    valid: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "run_id": self.run_id,
            "run_type": self.run_type.value,
            "created_at": self.created_at.isoformat(),
            "config_snapshot": self.config_snapshot,
            "source_history": str(self.source_history) if self.source_history else None,
            "artefacts_dir": str(self.artefacts_dir) if self.artefacts_dir else None,
            "is_completed": self.is_completed,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "valid": self.valid,
            "error": self.error,
        }

    @classmethod
    def create_test(cls, config: dict[str, Any]) -> "RunContext":
        """
        Create a run context for a test run.

        Args:
            config: Settings snapshot

        Returns:
            New RunContext for a test run.
        """
        return cls(
            run_id=generate_run_id(RunType.TEST.value),
            run_type=RunType.TEST,
            config_snapshot=config,
        )

    @classmethod
    def create_check(cls, history_path: Path, config: dict[str, Any]) -> "RunContext":
        """Create a run context for re-checking a stored history."""
        return cls(
            run_id=generate_run_id(RunType.CHECK.value),
            run_type=RunType.CHECK,
            config_snapshot=config,
            source_history=history_path,
        )

    def mark_completed(self, valid: str | None = None, error: str | None = None) -> None:
        """Mark the run as completed."""
        self.is_completed = True
        self.completed_at = datetime.now(UTC)
        self.valid = valid
        self.error = error
