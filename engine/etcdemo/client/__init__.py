"""
Store client adapters.
"""

from etcdemo.client.base import Client, ClientState, classify_timeout
from etcdemo.client.etcd import CasResult, EtcdClient

__all__ = [
    "CasResult",
    "Client",
    "ClientState",
    "EtcdClient",
    "classify_timeout",
]
