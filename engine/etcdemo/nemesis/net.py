"""
Network fault primitives.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable

from etcdemo.cluster.remote import Remote


class Net(ABC):
    """Severs and restores reachability between nodes."""

    @abstractmethod
    async def drop(self, node: str, sources: Iterable[str]) -> None:
        """Make `node` drop all traffic from `sources`."""
        pass

    @abstractmethod
    async def heal(self, node: str) -> None:
        """Remove every drop rule on `node`."""
        pass


class IptablesNet(Net):
    """Drops inbound traffic with iptables on each node."""

    def __init__(self, remote: Remote) -> None:
        self._remote = remote

    async def drop(self, node: str, sources: Iterable[str]) -> None:
        for source in sources:
            await self._remote.run(
                node, ["iptables", "-A", "INPUT", "-s", source, "-j", "DROP", "-w"]
            )

    async def heal(self, node: str) -> None:
        await self._remote.run(node, ["iptables", "-F", "-w"])
        await self._remote.run(node, ["iptables", "-X", "-w"])
