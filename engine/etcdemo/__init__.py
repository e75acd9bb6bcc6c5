"""
etcdemo: linearizability testing for etcd

Drives concurrent read/write/compare-and-set clients against an etcd
cluster while a nemesis partitions the network, records every operation in a
history, and checks each key's history against a CAS-register model.
"""

__version__ = "0.1.0"

from etcdemo.config import Settings, get_settings

__all__ = ["__version__", "Settings", "get_settings"]
