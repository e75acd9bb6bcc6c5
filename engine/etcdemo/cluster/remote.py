"""
Remote command execution on cluster nodes.

The harness never talks SSH itself; it runs a configurable command prefix
such as ["ssh", "{node}"] or ["docker", "exec", "{node}"] followed by the
command to execute.
"""

import asyncio
from abc import ABC, abstractmethod

from etcdemo.errors import RemoteError
from etcdemo.logging import get_logger

logger = get_logger(__name__)


class Remote(ABC):
    """Runs commands on a node."""

    @abstractmethod
    async def run(self, node: str, args: list[str]) -> str:
        """
        Run a command on a node.

        Args:
            node: Node hostname
            args: Command and arguments

        Returns:
            Captured stdout

        Raises:
            RemoteError: Command exited non-zero
        """
        pass


class CommandRemote(Remote):
    """Runs commands through a local subprocess with a per-node prefix."""

    def __init__(self, prefix: list[str]) -> None:
        self._prefix = list(prefix)

    def command_for(self, node: str, args: list[str]) -> list[str]:
        """Full argv for running `args` on `node`."""
        return [part.replace("{node}", node) for part in self._prefix] + list(args)

    async def run(self, node: str, args: list[str]) -> str:
        argv = self.command_for(node, args)
        logger.debug("%s: %s", node, " ".join(argv))

        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()

        if proc.returncode != 0:
            raise RemoteError(node, list(args), proc.returncode or -1, stderr.decode(errors="replace"))
        return stdout.decode(errors="replace")
