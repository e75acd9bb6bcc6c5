"""
Command line entry point.

Usage:
    etcdemo test --nodes n1 n2 n3 n4 n5 --time-limit 60
    etcdemo check store/runs/test_20240115_143022_a1b2c3d4/history.jsonl
    etcdemo check test_20240115_143022_a1b2c3d4
    etcdemo runs --type test

Exit codes: 0 valid, 1 invalid, 2 unknown (or a run that was aborted).
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from etcdemo import __version__
from etcdemo.checker import Validity
from etcdemo.config import Settings
from etcdemo.logging import setup_logging
from etcdemo.runner import RunOutcome, check_history, run_test
from etcdemo.runtime import ArtefactManager, RunType

EXIT_CODES = {
    Validity.VALID: 0,
    Validity.INVALID: 1,
    Validity.UNKNOWN: 2,
}

# argparse dest -> Settings field
OVERRIDES = {
    "nodes": "nodes",
    "concurrency": "concurrency",
    "threads_per_key": "threads_per_key",
    "key_count": "key_count",
    "ops_per_key": "ops_per_key",
    "time_limit": "time_limit_s",
    "stagger": "stagger_s",
    "nemesis_interval": "nemesis_interval_s",
    "client_timeout_ms": "client_timeout_ms",
    "peer_port": "peer_port",
    "client_port": "client_port",
    "etcd_version": "etcd_version",
    "db_settle": "db_settle_s",
    "remote_prefix": "remote_prefix",
    "seed": "seed",
    "check_time_limit": "check_time_limit_s",
    "check_workers": "check_workers",
    "data_dir": "data_dir",
    "log_level": "log_level",
}


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--data-dir", type=Path, help="Root directory for run artefacts")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR or CRITICAL")
    parser.add_argument("--json-logs", action="store_true", help="One JSON object per log line")
    parser.add_argument(
        "--check-time-limit", type=float, help="Seconds allowed for checking each key"
    )
    parser.add_argument("--check-workers", type=int, help="Processes used to check keys")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="etcdemo",
        description="Linearizability test harness for etcd",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    commands = parser.add_subparsers(dest="command", required=True)

    test = commands.add_parser("test", help="Run a test against a cluster")
    test.add_argument("--nodes", nargs="+", help="Node hostnames")
    test.add_argument("--concurrency", type=int, help="Total worker threads")
    test.add_argument("--threads-per-key", type=int, help="Worker threads sharing one key")
    test.add_argument("--key-count", type=int, help="Number of independent keys")
    test.add_argument("--ops-per-key", type=int, help="Operations issued per key")
    test.add_argument("--time-limit", type=float, help="Seconds to run the workload")
    test.add_argument("--stagger", type=float, help="Mean seconds between a worker's ops")
    test.add_argument("--nemesis-interval", type=float, help="Seconds between fault events")
    test.add_argument("--client-timeout-ms", type=int, help="Per-request timeout")
    test.add_argument("--peer-port", type=int)
    test.add_argument("--client-port", type=int)
    test.add_argument("--etcd-version", help="etcd release, e.g. v3.1.5")
    test.add_argument("--db-settle", type=float, help="Seconds to wait after starting etcd")
    test.add_argument(
        "--remote-prefix",
        nargs="+",
        help="Command prefix for running commands on a node, e.g. ssh {node}",
    )
    test.add_argument("--seed", type=int, help="Random seed")
    _add_common(test)

    check = commands.add_parser("check", help="Re-check a stored history")
    check.add_argument("history", help="Path to a history.jsonl, or the ID of a stored run")
    _add_common(check)

    runs = commands.add_parser("runs", help="List stored runs, newest first")
    runs.add_argument(
        "--type", dest="run_type", choices=[t.value for t in RunType], help="Only this run type"
    )
    runs.add_argument("--limit", type=int, default=20, help="Maximum runs to list")
    _add_common(runs)

    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Environment settings with any command line values layered on top."""
    overrides: dict[str, Any] = {}
    for dest, field in OVERRIDES.items():
        value = getattr(args, dest, None)
        if value is not None:
            overrides[field] = value
    return Settings(**overrides)


def print_summary(outcome: RunOutcome) -> None:
    linear = outcome.analysis.linear
    print(f"Run ID:   {outcome.context.run_id}")
    print(f"Records:  {len(outcome.ops)}")
    print(f"Keys:     {len(linear.results)}")
    if outcome.aborted:
        print(f"Aborted:  {outcome.aborted}")
    for problem in outcome.analysis.problems:
        print(f"Problem:  {problem}")
    for key in linear.failures:
        print(f"Key {key}: {linear.results[key].message or 'not linearizable'}")
    for key in linear.unknown:
        print(f"Key {key}: {linear.results[key].message}")
    print(f"Results:  {outcome.run_dir}")
    print(f"Valid:    {outcome.valid.value}")


def resolve_history(settings: Settings, target: str) -> Path | None:
    """A history path as given, or the history.jsonl of a stored run with that ID."""
    path = Path(target)
    if path.is_file():
        return path
    run_dir = ArtefactManager(settings.data_dir).get_run_directory(target)
    if run_dir is not None and (run_dir / "history.jsonl").is_file():
        return run_dir / "history.jsonl"
    return None


def print_runs(runs: list[dict[str, Any]]) -> None:
    if not runs:
        print("No runs")
        return
    for run in runs:
        verdict = run.get("valid") or "incomplete"
        line = f"{run['run_id']}  {run['run_type']:<5}  {verdict:<10}  {run.get('error') or ''}"
        print(line.rstrip())


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = settings_from_args(args)
    except ValidationError as e:
        parser.error(str(e))

    setup_logging(settings.log_level, json_output=args.json_logs)

    if args.command == "runs":
        print_runs(
            ArtefactManager(settings.data_dir).list_runs(run_type=args.run_type, limit=args.limit)
        )
        return 0

    if args.command == "test":
        outcome = asyncio.run(run_test(settings))
    else:
        history = resolve_history(settings, args.history)
        if history is None:
            parser.error(f"No such history or run: {args.history}")
        outcome = check_history(settings, history)

    print_summary(outcome)
    return EXIT_CODES[outcome.valid]


if __name__ == "__main__":
    sys.exit(main())
