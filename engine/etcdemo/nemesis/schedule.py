"""
Fault schedule.

An infinite cycle of: sleep, start partition, sleep, stop partition. Runs on
its own task and clock, independent of the client workload, until the run's
deadline. Every fault event is recorded in the shared history under the
'nemesis' process.
"""

import asyncio
import itertools
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass

from etcdemo.history.models import NEMESIS, ErrorKind, Op, OpFunction, OpType
from etcdemo.history.store import History
from etcdemo.logging import get_logger
from etcdemo.nemesis.partition import Nemesis

logger = get_logger(__name__)


@dataclass(frozen=True)
class Sleep:
    seconds: float


Step = Sleep | OpFunction


def fault_cycle(interval_s: float) -> Iterator[Step]:
    """sleep → start → sleep → stop, forever."""
    return itertools.cycle([Sleep(interval_s), OpFunction.START, Sleep(interval_s), OpFunction.STOP])


class FaultScheduler:
    """Drives a nemesis through the fault cycle until a deadline."""

    def __init__(
        self,
        nemesis: Nemesis,
        history: History,
        interval_s: float = 5.0,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            nemesis: Fault injector receiving start/stop operations
            history: Shared history the fault events are recorded in
            interval_s: Sleep between consecutive events
            clock: Seconds clock comparable with the deadline (default: loop time)
            sleep: Sleep coroutine (tests substitute a virtual clock)
        """
        self._nemesis = nemesis
        self._history = history
        self._interval_s = interval_s
        self._clock = clock
        self._sleep = sleep
        self.events_emitted = 0

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    async def run(self, deadline: float) -> None:
        """Run the cycle until `deadline`. Does not heal; see `teardown`."""
        for step in fault_cycle(self._interval_s):
            now = self._now()

            if isinstance(step, Sleep):
                remaining = deadline - now
                if remaining < step.seconds:
                    await self._sleep(max(remaining, 0.0))
                    return
                await self._sleep(step.seconds)
                continue

            if now > deadline:
                return
            await self.emit(step)

    async def emit(self, f: OpFunction) -> Op:
        """Record a fault invocation, apply it, and record its completion."""
        invocation = self._history.append(Op(process=NEMESIS, type=OpType.INVOKE, f=f))
        try:
            completion = await self._nemesis.invoke(invocation)
        except asyncio.CancelledError:
            self._history.append(invocation.complete(OpType.INFO, error=ErrorKind.INTERRUPTED))
            raise
        self.events_emitted += 1
        return self._history.append(completion)

    async def teardown(self) -> None:
        """Heal the cluster; safe to call whether or not a partition is open."""
        logger.info("Healing network before exit")
        await self._nemesis.teardown()
