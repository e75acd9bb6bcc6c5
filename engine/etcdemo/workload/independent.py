"""
Independent per-key workload scheduling.

Worker threads are split into groups of `threads_per_key`. Each group takes
the next untested key, shares that key's bounded op stream until it runs
out, then moves on to the next key. Groups work on different keys at the
same time; keys share no state.
"""

import random
from collections import deque
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from etcdemo.logging import get_logger
from etcdemo.workload.generator import Invocation, register_ops

logger = get_logger(__name__)

StreamFactory = Callable[[random.Random, int], Iterator[Invocation]]


@dataclass
class KeyStream:
    """A key and what is left of its op stream."""

    key: int
    ops: Iterator[Invocation]
    emitted: int = 0


class IndependentWorkload:
    """
    Hands out (key, invocation) pairs to worker threads.

    All calls happen on the event loop thread and never await, so
    `next_invocation` is atomic with respect to other workers.
    """

    def __init__(
        self,
        key_count: int,
        threads_per_key: int,
        ops_per_key: int,
        rng: random.Random | None = None,
        stream_factory: StreamFactory = register_ops,
    ) -> None:
        """
        Initialize workload.

        Args:
            key_count: Number of keys to test (keys are 0..key_count-1)
            threads_per_key: Threads sharing one key at a time
            ops_per_key: Invocations issued per key
            rng: Source of per-key seeds
            stream_factory: Builds a fresh op stream for a key
        """
        self._threads_per_key = threads_per_key
        self._ops_per_key = ops_per_key
        self._rng = rng or random.Random()
        self._stream_factory = stream_factory
        self._keys: deque[int] = deque(range(key_count))
        self._current: dict[int, KeyStream | None] = {}
        self.emitted = 0
        self.keys_started: list[int] = []

    def group_of(self, thread: int) -> int:
        return thread // self._threads_per_key

    def _next_stream(self) -> KeyStream | None:
        if not self._keys:
            return None
        key = self._keys.popleft()
        stream_rng = random.Random(self._rng.getrandbits(64))
        self.keys_started.append(key)
        logger.debug("Starting key %d", key)
        return KeyStream(key, self._stream_factory(stream_rng, self._ops_per_key))

    def next_invocation(self, thread: int) -> tuple[int, Invocation] | None:
        """
        Next invocation for a worker thread.

        Returns:
            (key, invocation), or None once every key is exhausted
        """
        group = self.group_of(thread)

        while True:
            stream = self._current.get(group)
            if stream is None:
                stream = self._next_stream()
                if stream is None:
                    return None
                self._current[group] = stream

            invocation = next(stream.ops, None)
            if invocation is not None:
                stream.emitted += 1
                self.emitted += 1
                return stream.key, invocation

            logger.debug("Key %d exhausted after %d ops", stream.key, stream.emitted)
            self._current[group] = None
