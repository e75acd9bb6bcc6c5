"""
Network partition nemesis.

When started:
- Shuffles the node set and splits it into two halves
- Makes every node drop traffic from the other half

When stopped, or torn down, every node is healed, including nodes on which
a previous start or stop only partially succeeded.
"""

import asyncio
import random
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence

from etcdemo.errors import RemoteError
from etcdemo.history.models import Op, OpFunction, OpType
from etcdemo.logging import get_logger
from etcdemo.nemesis.net import Net

logger = get_logger(__name__)

Grudge = dict[str, set[str]]


class ClusterState:
    """
    Live node set and current partition.

    Owned by the nemesis; every mutation happens while holding `lock`.
    """

    def __init__(self, nodes: Sequence[str]) -> None:
        self.nodes = list(nodes)
        self.grudge: Grudge = {}
        self.dirty = False  # A fault step partially failed on some node
        self.lock = asyncio.Lock()

    @property
    def partitioned(self) -> bool:
        """True unless the cluster is known to be fully connected."""
        return bool(self.grudge) or self.dirty

    def snapshot(self) -> dict[str, list[str]]:
        return {node: sorted(dropped) for node, dropped in sorted(self.grudge.items())}


def bisect(nodes: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split nodes into two halves; the first is the smaller when the count is odd."""
    half = len(nodes) // 2
    return list(nodes[:half]), list(nodes[half:])


def complete_grudge(components: Sequence[Sequence[str]]) -> Grudge:
    """Every node drops traffic from every node outside its own component."""
    everyone = {node for component in components for node in component}
    grudge: Grudge = {}
    for component in components:
        members = set(component)
        for node in component:
            grudge[node] = everyone - members
    return grudge


def random_halves(nodes: Sequence[str], rng: random.Random) -> tuple[list[str], list[str]]:
    """A random balanced bipartition of the nodes."""
    shuffled = list(nodes)
    rng.shuffle(shuffled)
    return bisect(shuffled)


class Nemesis(ABC):
    """
    Fault injector.

    `invoke` applies a start or stop operation and returns its completion;
    `teardown` must leave the system fault-free.
    """

    async def setup(self) -> None:
        """Prepare the nemesis before the run. Default: nothing."""
        return None

    @abstractmethod
    async def invoke(self, op: Op) -> Op:
        pass

    @abstractmethod
    async def teardown(self) -> None:
        pass


class PartitionRandomHalves(Nemesis):
    """Partitions the cluster into random halves on start, heals on stop."""

    def __init__(self, net: Net, state: ClusterState, rng: random.Random | None = None) -> None:
        self._net = net
        self._state = state
        self._rng = rng or random.Random()

    @property
    def state(self) -> ClusterState:
        return self._state

    async def setup(self) -> None:
        # Leftover rules from an earlier crashed run would skew the test
        async with self._state.lock:
            await self._heal_all()

    async def invoke(self, op: Op) -> Op:
        async with self._state.lock:
            if op.f == OpFunction.START:
                if self._state.dirty:
                    await self._heal_all()
                grudge = complete_grudge(random_halves(self._state.nodes, self._rng))
                await self._apply(grudge)
                return op.complete(OpType.INFO, value={"cut-off": self._state.snapshot()})

            if op.f == OpFunction.STOP:
                await self._heal_all()
                return op.complete(OpType.INFO, value="fully connected")

        raise ValueError(f"Partition nemesis cannot handle {op.f.value}")

    async def teardown(self) -> None:
        async with self._state.lock:
            await self._heal_all()
        if self._state.partitioned:
            logger.error("Network may still be partitioned after teardown: %s", self._state.snapshot())

    async def _apply(self, grudge: Grudge) -> None:
        # Record the grudge before touching nodes so a later heal covers partial cuts
        self._state.grudge = grudge
        failed = await self._on_all_nodes(
            lambda node: self._net.drop(node, sorted(grudge.get(node, ()))),
            "partition",
        )
        if failed:
            self._state.dirty = True
        logger.info("Cut off %s", self._state.snapshot())

    async def _heal_all(self) -> None:
        failed = await self._on_all_nodes(self._net.heal, "heal")
        if failed:
            self._state.dirty = True
            return
        self._state.grudge = {}
        self._state.dirty = False
        logger.info("Network fully connected")

    async def _on_all_nodes(
        self,
        action: Callable[[str], Awaitable[None]],
        label: str,
    ) -> list[str]:
        """Run `action` on every node concurrently; return nodes where it failed."""
        nodes = self._state.nodes
        results = await asyncio.gather(*(action(node) for node in nodes), return_exceptions=True)

        failed = []
        for node, result in zip(nodes, results, strict=True):
            if isinstance(result, (RemoteError, OSError)):
                logger.warning("%s failed on %s: %s", label, node, result)
                failed.append(node)
            elif isinstance(result, BaseException):
                raise result
        return failed
