"""
Cluster collaborators: node addressing, remote execution, and DB lifecycle.
"""

from etcdemo.cluster.addresses import (
    CLIENT_PORT,
    PEER_PORT,
    client_url,
    initial_cluster,
    node_url,
    peer_url,
)
from etcdemo.cluster.db import ClusterDB, EtcdDB
from etcdemo.cluster.remote import CommandRemote, Remote

__all__ = [
    "CLIENT_PORT",
    "PEER_PORT",
    "client_url",
    "initial_cluster",
    "node_url",
    "peer_url",
    "ClusterDB",
    "EtcdDB",
    "CommandRemote",
    "Remote",
]
