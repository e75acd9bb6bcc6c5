"""
Operation histories.

Provides:
- The Op record and its type/function enums
- The append-only History log and JSONL persistence
- Pairing, well-formedness checks and per-key splitting
"""

from etcdemo.history.models import NEMESIS, ErrorKind, Op, OpFunction, OpType
from etcdemo.history.store import (
    History,
    check_well_formed,
    completions,
    pair_ops,
    read_jsonl,
    split_by_key,
    write_jsonl,
)

__all__ = [
    # Models
    "NEMESIS",
    "ErrorKind",
    "Op",
    "OpFunction",
    "OpType",
    # Store
    "History",
    "check_well_formed",
    "completions",
    "pair_ops",
    "read_jsonl",
    "split_by_key",
    "write_jsonl",
]
