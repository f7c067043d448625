"""Fleet: reconciliation, operation tracking and config allocation."""

from agentfleet.fleet.allocator import ConfigAllocator, ConfigAndInstance, RoundRobinCursor
from agentfleet.fleet.cloud import ManagedCloud
from agentfleet.fleet.nodes import NodeRegistry
from agentfleet.fleet.reconciler import LostNodeReconciler, ReconcileReport
from agentfleet.fleet.registry import CloudRegistry
from agentfleet.fleet.tracker import InstanceOperationTracker

__all__ = [
    "ConfigAllocator",
    "ConfigAndInstance",
    "RoundRobinCursor",
    "ManagedCloud",
    "NodeRegistry",
    "LostNodeReconciler",
    "ReconcileReport",
    "CloudRegistry",
    "InstanceOperationTracker",
]
