"""
Workload generation: op factories, combinators, and per-key scheduling.
"""

from etcdemo.workload.generator import (
    VALUE_RANGE,
    Invocation,
    Stagger,
    cas_op,
    limit,
    mix,
    read_op,
    register_ops,
    write_op,
)
from etcdemo.workload.independent import IndependentWorkload, KeyStream

__all__ = [
    "VALUE_RANGE",
    "Invocation",
    "Stagger",
    "cas_op",
    "limit",
    "mix",
    "read_op",
    "register_ops",
    "write_op",
    "IndependentWorkload",
    "KeyStream",
]
