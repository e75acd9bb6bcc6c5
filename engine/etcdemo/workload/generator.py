"""
Operation generators for the CAS-register workload.

Generators are plain iterators of invocations. They are lazy and possibly
infinite; callers bound them with `limit` and pace them with `Stagger`.
"""

import itertools
import random
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any

from etcdemo.history.models import OpFunction

# Writes and cas draw values from range(VALUE_RANGE)
VALUE_RANGE = 5


@dataclass(frozen=True)
class Invocation:
    """What a worker should invoke next; process and key are filled in by the worker."""

    f: OpFunction
    value: Any = None


OpFactory = Callable[[random.Random], Invocation]


def read_op(rng: random.Random) -> Invocation:
    return Invocation(OpFunction.READ)


def write_op(rng: random.Random) -> Invocation:
    return Invocation(OpFunction.WRITE, rng.randrange(VALUE_RANGE))


def cas_op(rng: random.Random) -> Invocation:
    return Invocation(OpFunction.CAS, [rng.randrange(VALUE_RANGE), rng.randrange(VALUE_RANGE)])


def mix(factories: Sequence[OpFactory], rng: random.Random) -> Iterator[Invocation]:
    """Infinite stream of invocations, each drawn uniformly from `factories`."""
    while True:
        yield rng.choice(factories)(rng)


def limit(n: int, ops: Iterator[Invocation]) -> Iterator[Invocation]:
    """Truncate a stream to its first n invocations."""
    return itertools.islice(ops, n)


def register_ops(rng: random.Random, count: int) -> Iterator[Invocation]:
    """The per-key workload: a uniform read/write/cas mix, `count` ops long."""
    return limit(count, mix([read_op, write_op, cas_op], rng))


class Stagger:
    """
    Random pacing for one worker.

    Delays are uniform in [0, 2 * dt), so the mean gap between a worker's
    operations is dt.
    """

    def __init__(self, dt: float, rng: random.Random) -> None:
        self.dt = dt
        self._rng = rng

    def delay(self) -> float:
        if self.dt <= 0:
            return 0.0
        return self._rng.uniform(0, 2 * self.dt)
