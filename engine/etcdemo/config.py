"""
Configuration management for the etcdemo test harness.

Uses pydantic-settings for type-safe environment variable handling.
Every field can also be overridden from the command line.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_NODES = ["n1", "n2", "n3", "n4", "n5"]


class Settings(BaseSettings):
    """
    Test run settings loaded from environment variables.

    Workload, fault schedule and checker budgets are all inputs to a run and
    are snapshotted into the run's config.json.
    """

    model_config = SettingsConfigDict(
        env_prefix="ETCDEMO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Cluster
    nodes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_NODES),
        description="Node hostnames, in bootstrap order",
    )
    peer_port: int = Field(default=2380, ge=1, le=65535, description="etcd peer port")
    client_port: int = Field(default=2379, ge=1, le=65535, description="etcd client port")
    etcd_version: str = Field(default="v3.1.5", description="etcd release to install")
    db_settle_s: float = Field(
        default=10.0,
        ge=0,
        description="Seconds to wait after starting the daemon before using it",
    )
    remote_prefix: list[str] = Field(
        default_factory=lambda: ["ssh", "{node}"],
        description="Command prefix used to run commands on a node ({node} is substituted)",
    )

    # Workload
    concurrency: int = Field(default=10, ge=1, description="Total worker threads")
    threads_per_key: int = Field(
        default=10,
        ge=1,
        description="Worker threads sharing one key at a time",
    )
    key_count: int = Field(default=10, ge=1, description="Number of independent keys")
    ops_per_key: int = Field(default=100, ge=1, description="Operations issued per key")
    stagger_s: float = Field(
        default=1 / 50,
        ge=0,
        description="Mean delay between operations of one worker",
    )
    time_limit_s: float = Field(
        default=60.0,
        gt=0,
        description="Wall-clock limit for the workload and nemesis",
    )
    seed: int | None = Field(default=None, description="Random seed for the workload and nemesis")

    # Client
    client_timeout_ms: int = Field(
        default=5000,
        ge=1,
        description="Response wait bound for a single client request",
    )

    # Nemesis
    nemesis_interval_s: float = Field(
        default=5.0,
        gt=0,
        description="Sleep between partition start and stop events",
    )

    # Checker
    check_time_limit_s: float | None = Field(
        default=None,
        gt=0,
        description="Per-key budget for the linearizability search (None = unbounded)",
    )
    check_workers: int = Field(
        default=1,
        ge=1,
        description="Processes used to check keys in parallel",
    )

    # Output
    data_dir: Path = Field(
        default=Path("./store"),
        description="Root directory for run artefacts",
    )
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v

    @field_validator("nodes")
    @classmethod
    def validate_nodes(cls, v: list[str]) -> list[str]:
        """Reject empty and duplicate node lists."""
        if not v:
            raise ValueError("At least one node is required")
        if len(set(v)) != len(v):
            raise ValueError(f"Duplicate nodes in {v}")
        return v

    @model_validator(mode="after")
    def validate_concurrency(self) -> "Settings":
        """Concurrency must split evenly into per-key worker groups."""
        if self.concurrency % self.threads_per_key != 0:
            raise ValueError(
                f"concurrency ({self.concurrency}) must be a multiple of "
                f"threads_per_key ({self.threads_per_key})"
            )
        return self

    @property
    def client_timeout_s(self) -> float:
        """Client timeout in seconds, as httpx expects it."""
        return self.client_timeout_ms / 1000

    @property
    def worker_groups(self) -> int:
        """Number of keys tested concurrently."""
        return self.concurrency // self.threads_per_key

    def get_redacted_config(self) -> dict[str, Any]:
        """
        Get the run configuration as a plain dict.
        Safe for logging and for the run's config.json.
        """
        return {
            "nodes": list(self.nodes),
            "concurrency": self.concurrency,
            "threads_per_key": self.threads_per_key,
            "key_count": self.key_count,
            "ops_per_key": self.ops_per_key,
            "stagger_s": self.stagger_s,
            "time_limit_s": self.time_limit_s,
            "seed": self.seed,
            "client_timeout_ms": self.client_timeout_ms,
            "nemesis_interval_s": self.nemesis_interval_s,
            "check_time_limit_s": self.check_time_limit_s,
            "check_workers": self.check_workers,
            "etcd_version": self.etcd_version,
            "data_dir": str(self.data_dir),
            "log_level": self.log_level,
        }


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure single instance throughout the process.
    """
    return Settings()
