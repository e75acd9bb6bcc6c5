"""
Artefact management for run outputs.

Handles directory structure and file naming.
"""

import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from etcdemo.checker.models import RunAnalysis
from etcdemo.checker.timeline import render_timeline
from etcdemo.history.models import Op
from etcdemo.history.store import split_by_key, write_jsonl
from etcdemo.runtime.run_context import RunContext


class ArtefactManager:
    """
    Manages artefact directories and files for runs.

    Directory structure:
    {data_dir}/
        runs/
            {run_id}/
                config.json      # Run context and settings snapshot
                history.jsonl    # Every invocation and completion
                results.json     # Linearizability verdicts and witnesses
                perf.json        # Counts, latencies, throughput, fault windows
                timeline/
                    {key}.txt    # Per-key plain-text timeline
                logs/
                    {node}/      # Store log files copied before teardown
    """

    def __init__(self, base_dir: Path) -> None:
        """
        Initialize artefact manager.

        Args:
            base_dir: Base data directory
        """
        self.base_dir = base_dir
        self.runs_dir = base_dir / "runs"
        self.runs_dir.mkdir(parents=True, exist_ok=True)

    def create_run_directory(self, run_context: RunContext) -> Path:
        """
        Create directory for a run.

        Args:
            run_context: Run context

        Returns:
            Path to run directory.
        """
        run_dir = self.runs_dir / run_context.run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        (run_dir / "timeline").mkdir(exist_ok=True)

        run_context.artefacts_dir = run_dir
        self.save_config(run_context, run_dir)
        return run_dir

    def save_config(self, run_context: RunContext, run_dir: Path) -> Path:
        """
        Save run configuration. Rewritten when the run completes.

        Returns:
            Path to config file.
        """
        config_path = run_dir / "config.json"
        with open(config_path, "w") as f:
            json.dump(run_context.to_dict(), f, indent=2, default=str)
        return config_path

    def save_history(self, ops: Sequence[Op], run_dir: Path) -> Path:
        return write_jsonl(ops, run_dir / "history.jsonl")

    def save_results(self, analysis: RunAnalysis, run_dir: Path) -> Path:
        """
        Save verdicts. The perf summary goes to its own file.

        Returns:
            Path to results file.
        """
        results_path = run_dir / "results.json"
        payload = analysis.model_dump(mode="json", exclude={"perf"})
        with open(results_path, "w") as f:
            json.dump(payload, f, indent=2)
        return results_path

    def save_perf(self, perf: dict[str, Any], run_dir: Path) -> Path:
        perf_path = run_dir / "perf.json"
        with open(perf_path, "w") as f:
            json.dump(perf, f, indent=2, default=str)
        return perf_path

    def save_timelines(self, ops: Sequence[Op], run_dir: Path) -> list[Path]:
        """
        Write one timeline per key.

        Returns:
            Paths written, in key order.
        """
        timeline_dir = run_dir / "timeline"
        timeline_dir.mkdir(exist_ok=True)

        paths = []
        for key, sub in split_by_key(ops).items():
            path = timeline_dir / f"{key}.txt"
            path.write_text(render_timeline(sub, title=f"key {key}"))
            paths.append(path)
        return paths

    def save_analysis(self, ops: Sequence[Op], analysis: RunAnalysis, run_dir: Path) -> None:
        """Write every post-run artefact."""
        self.save_results(analysis, run_dir)
        self.save_perf(analysis.perf, run_dir)
        self.save_timelines(ops, run_dir)

    def get_run_directory(self, run_id: str) -> Path | None:
        """
        Get directory for an existing run.

        Args:
            run_id: Run ID

        Returns:
            Path to run directory, or None if not found.
        """
        run_dir = self.runs_dir / run_id
        if run_dir.exists():
            return run_dir
        return None

    def list_runs(
        self,
        run_type: str | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """
        List recent runs, newest first.

        Args:
            run_type: Filter by run type (test/check)
            limit: Maximum number of runs to return

        Returns:
            List of run info dicts.
        """
        runs = []
        for run_dir in sorted(self.runs_dir.iterdir(), reverse=True):
            if not run_dir.is_dir():
                continue

            config_path = run_dir / "config.json"
            if not config_path.exists():
                continue

            with open(config_path) as f:
                config = json.load(f)

            if run_type and config.get("run_type") != run_type:
                continue

            runs.append(config)
            if len(runs) >= limit:
                break

        return runs
