"""Agent Fleet: keeps ephemeral cloud build agents in step with the provider."""

__version__ = "0.1.0"

from agentfleet.fleet.allocator import ConfigAllocator, ConfigAndInstance
from agentfleet.fleet.reconciler import LostNodeReconciler
from agentfleet.fleet.tracker import InstanceOperationTracker

__all__ = [
    "ConfigAllocator",
    "ConfigAndInstance",
    "LostNodeReconciler",
    "InstanceOperationTracker",
    "__version__",
]
