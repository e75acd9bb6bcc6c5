"""
Database lifecycle on cluster nodes.

Installs, starts and stops the etcd daemon on each node. All commands go
through a Remote so the lifecycle can be driven over SSH, docker exec, or
a fake in tests.
"""

import asyncio
import shlex
from abc import ABC, abstractmethod

from etcdemo.cluster.addresses import CLIENT_PORT, PEER_PORT, client_url, initial_cluster, peer_url
from etcdemo.cluster.remote import Remote
from etcdemo.logging import get_logger

logger = get_logger(__name__)

DIR = "/opt/etcd"
BINARY = "etcd"
LOGFILE = f"{DIR}/etcd.log"
PIDFILE = f"{DIR}/etcd.pid"
ARCHIVE = "/tmp/etcd.tar.gz"


def download_url(version: str) -> str:
    """Release tarball URL for an etcd version."""
    return (
        f"https://storage.googleapis.com/etcd/{version}/etcd-{version}-linux-amd64.tar.gz"
    )


class ClusterDB(ABC):
    """Lifecycle of the system under test on one node."""

    @abstractmethod
    async def setup(self, node: str) -> None:
        """Install and start the database on a node."""
        pass

    @abstractmethod
    async def teardown(self, node: str) -> None:
        """Stop the database on a node and remove its data."""
        pass

    @abstractmethod
    def log_files(self, node: str) -> list[str]:
        """Paths of log files worth collecting after a run."""
        pass

    @abstractmethod
    async def read_log(self, node: str, path: str) -> str:
        """Contents of one of `log_files(node)`."""
        pass


class EtcdDB(ClusterDB):
    """etcd for a particular version."""

    def __init__(
        self,
        remote: Remote,
        nodes: list[str],
        version: str = "v3.1.5",
        settle_s: float = 10.0,
        peer_port: int = PEER_PORT,
        client_port: int = CLIENT_PORT,
    ) -> None:
        self._remote = remote
        self._nodes = list(nodes)
        self._version = version
        self._settle_s = settle_s
        self._peer_port = peer_port
        self._client_port = client_port

    def daemon_args(self, node: str) -> list[str]:
        """Command line flags for the etcd daemon on `node`."""
        peer = peer_url(node, self._peer_port)
        client = client_url(node, self._client_port)
        return [
            "--log-output", "stderr",
            "--name", node,
            "--listen-peer-urls", peer,
            "--listen-client-urls", client,
            "--advertise-client-urls", client,
            "--initial-cluster-state", "new",
            "--initial-advertise-peer-urls", peer,
            "--initial-cluster", initial_cluster(self._nodes, self._peer_port),
        ]

    def start_command(self, node: str) -> list[str]:
        """Shell command starting the daemon in the background with a pidfile."""
        daemon = shlex.join(
            [
                "start-stop-daemon", "--start", "--background",
                "--make-pidfile", "--pidfile", PIDFILE,
                "--chdir", DIR,
                "--no-close", "--oknodo",
                "--exec", f"{DIR}/{BINARY}",
                "--",
                *self.daemon_args(node),
            ]
        )
        return ["sh", "-c", f"{daemon} >> {shlex.quote(LOGFILE)} 2>&1"]

    async def setup(self, node: str) -> None:
        logger.info("%s installing etcd %s", node, self._version)

        await self._remote.run(node, ["mkdir", "-p", DIR])
        await self._remote.run(node, ["curl", "-fsSL", "-o", ARCHIVE, download_url(self._version)])
        await self._remote.run(
            node, ["tar", "-xzf", ARCHIVE, "--strip-components=1", "-C", DIR]
        )
        await self._remote.run(node, self.start_command(node))

        # Give the members time to find each other before clients connect
        await asyncio.sleep(self._settle_s)

    async def teardown(self, node: str) -> None:
        logger.info("%s tearing down etcd", node)
        await self._remote.run(
            node,
            ["start-stop-daemon", "--stop", "--oknodo", "--retry", "TERM/5/KILL/5",
             "--pidfile", PIDFILE],
        )
        await self._remote.run(node, ["rm", "-rf", DIR])

    def log_files(self, node: str) -> list[str]:
        return [LOGFILE]

    async def read_log(self, node: str, path: str) -> str:
        return await self._remote.run(node, ["cat", path])
