"""
Fault injection: network primitives, the partition nemesis, and its schedule.
"""

from etcdemo.nemesis.net import IptablesNet, Net
from etcdemo.nemesis.partition import (
    ClusterState,
    Nemesis,
    PartitionRandomHalves,
    bisect,
    complete_grudge,
    random_halves,
)
from etcdemo.nemesis.schedule import FaultScheduler, Sleep, fault_cycle

__all__ = [
    "IptablesNet",
    "Net",
    "ClusterState",
    "Nemesis",
    "PartitionRandomHalves",
    "bisect",
    "complete_grudge",
    "random_halves",
    "FaultScheduler",
    "Sleep",
    "fault_cycle",
]
