"""
Tests for node addressing, remote execution and the etcd lifecycle.
"""

import shlex
import sys

import pytest

from etcdemo.cluster import (
    CommandRemote,
    EtcdDB,
    client_url,
    initial_cluster,
    node_url,
    peer_url,
)
from etcdemo.cluster.db import LOGFILE, PIDFILE, download_url
from etcdemo.errors import RemoteError
from tests.fixtures.fake_cluster import FakeRemote

NODES = ["n1", "n2", "n3"]


class TestAddresses:
    """Tests for URL formatting."""

    def test_urls(self) -> None:
        assert node_url("n1", 1234) == "http://n1:1234"
        assert peer_url("n1") == "http://n1:2380"
        assert client_url("n2") == "http://n2:2379"
        assert client_url("n2", 12379) == "http://n2:12379"

    def test_initial_cluster_keeps_order(self) -> None:
        assert initial_cluster(["n2", "n1"]) == "n2=http://n2:2380,n1=http://n1:2380"

    def test_initial_cluster_custom_port(self) -> None:
        assert initial_cluster(["a"], 7000) == "a=http://a:7000"


class TestEtcdDB:
    """Tests for the daemon lifecycle commands."""

    def test_daemon_args(self) -> None:
        db = EtcdDB(FakeRemote(), NODES)

        assert db.daemon_args("n2") == [
            "--log-output", "stderr",
            "--name", "n2",
            "--listen-peer-urls", "http://n2:2380",
            "--listen-client-urls", "http://n2:2379",
            "--advertise-client-urls", "http://n2:2379",
            "--initial-cluster-state", "new",
            "--initial-advertise-peer-urls", "http://n2:2380",
            "--initial-cluster", "n1=http://n1:2380,n2=http://n2:2380,n3=http://n3:2380",
        ]

    def test_start_command_logs_to_file(self) -> None:
        command = EtcdDB(FakeRemote(), NODES).start_command("n1")

        assert command[:2] == ["sh", "-c"]
        assert command[2].endswith(f">> {LOGFILE} 2>&1")
        words = shlex.split(command[2])
        assert words[0] == "start-stop-daemon"
        assert PIDFILE in words
        assert "--initial-cluster-state" in words

    def test_download_url(self) -> None:
        assert download_url("v3.1.5") == (
            "https://storage.googleapis.com/etcd/v3.1.5/etcd-v3.1.5-linux-amd64.tar.gz"
        )

    @pytest.mark.asyncio
    async def test_setup_installs_then_starts(self) -> None:
        remote = FakeRemote()
        db = EtcdDB(remote, NODES, version="v3.2.0", settle_s=0)

        await db.setup("n3")

        commands = remote.for_node("n3")
        assert [c[0] for c in commands] == ["mkdir", "curl", "tar", "sh"]
        assert download_url("v3.2.0") in commands[1]

    @pytest.mark.asyncio
    async def test_teardown_stops_and_wipes(self) -> None:
        remote = FakeRemote()
        db = EtcdDB(remote, NODES)

        await db.teardown("n1")

        commands = remote.for_node("n1")
        assert commands[0][:2] == ["start-stop-daemon", "--stop"]
        assert commands[1] == ["rm", "-rf", "/opt/etcd"]

    @pytest.mark.asyncio
    async def test_setup_propagates_remote_errors(self) -> None:
        db = EtcdDB(FakeRemote(failing={"curl"}), NODES, settle_s=0)

        with pytest.raises(RemoteError):
            await db.setup("n1")

    def test_log_files(self) -> None:
        assert EtcdDB(FakeRemote(), NODES).log_files("n1") == [LOGFILE]

    @pytest.mark.asyncio
    async def test_read_log_through_remote(self) -> None:
        remote = FakeRemote(output="raft: elected leader\n")

        text = await EtcdDB(remote, NODES).read_log("n3", LOGFILE)

        assert text == "raft: elected leader\n"
        assert remote.for_node("n3") == [["cat", LOGFILE]]


class TestCommandRemote:
    """Tests for the command-prefix remote."""

    def test_prefix_substitution(self) -> None:
        remote = CommandRemote(["docker", "exec", "{node}"])

        assert remote.command_for("n4", ["iptables", "-F"]) == [
            "docker", "exec", "n4", "iptables", "-F",
        ]

    @pytest.mark.asyncio
    async def test_run_returns_stdout(self) -> None:
        remote = CommandRemote([sys.executable, "-c", "import sys; print(sys.argv[1])"])

        assert (await remote.run("n1", ["hello"])).strip() == "hello"

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises(self) -> None:
        remote = CommandRemote([sys.executable, "-c", "import sys; sys.exit(3)"])

        with pytest.raises(RemoteError) as exc_info:
            await remote.run("n1", ["ignored"])

        assert exc_info.value.returncode == 3
        assert exc_info.value.node == "n1"
