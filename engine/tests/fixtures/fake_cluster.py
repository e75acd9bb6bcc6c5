"""
Fakes for the remote execution and network layers.

Record every call instead of touching real nodes, with per-node failure
injection.
"""

from collections.abc import Iterable

from etcdemo.cluster.remote import Remote
from etcdemo.errors import RemoteError
from etcdemo.nemesis.net import Net


class FakeRemote(Remote):
    """Records commands; fails any command whose first word is in `failing`."""

    def __init__(self, failing: Iterable[str] = (), output: str = "") -> None:
        self.commands: list[tuple[str, list[str]]] = []
        self.failing = set(failing)
        self.output = output

    async def run(self, node: str, args: list[str]) -> str:
        self.commands.append((node, list(args)))
        if args and args[0] in self.failing:
            raise RemoteError(node, args, 1, "injected failure")
        return self.output

    def for_node(self, node: str) -> list[list[str]]:
        return [args for n, args in self.commands if n == node]


class FakeNet(Net):
    """
    Tracks which sources each node currently drops.

    Nodes in `failing` raise RemoteError on every call until removed.
    """

    def __init__(self, failing: Iterable[str] = ()) -> None:
        self.dropped: dict[str, set[str]] = {}
        self.failing = set(failing)
        self.drops: list[tuple[str, list[str]]] = []
        self.heals: list[str] = []

    async def drop(self, node: str, sources: Iterable[str]) -> None:
        sources = list(sources)
        self.drops.append((node, sources))
        if node in self.failing:
            raise RemoteError(node, ["iptables", "-A"], 1, "injected failure")
        self.dropped.setdefault(node, set()).update(sources)

    async def heal(self, node: str) -> None:
        self.heals.append(node)
        if node in self.failing:
            raise RemoteError(node, ["iptables", "-F"], 1, "injected failure")
        self.dropped.pop(node, None)

    @property
    def partitioned(self) -> bool:
        return any(self.dropped.values())
