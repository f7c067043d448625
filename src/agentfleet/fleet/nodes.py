"""Known node registry: agent names the host currently manages, per cloud."""

from __future__ import annotations
import logging
import threading
from collections import defaultdict

logger = logging.getLogger("agentfleet.nodes")


class NodeRegistry:
    """In-memory set of registered agent names for each cloud.

    Every registered node is known, so the lost-node sweep spares it. A node
    marked idle is parked (its instance stopped) and may be handed out again
    by the allocator; a busy node is serving work.
    """

    def __init__(self):
        self._nodes: dict[str, dict[str, bool]] = defaultdict(dict)  # cloud → name → idle
        self._lock = threading.Lock()

    def register(self, cloud: str, name: str, idle: bool = False) -> None:
        with self._lock:
            self._nodes[cloud][name] = idle
        logger.info(f"Registered node {name} in cloud {cloud} ({'idle' if idle else 'busy'})")

    def unregister(self, cloud: str, name: str) -> bool:
        with self._lock:
            if name not in self._nodes.get(cloud, {}):
                return False
            del self._nodes[cloud][name]
        logger.info(f"Unregistered node {name} from cloud {cloud}")
        return True

    def set_idle(self, cloud: str, name: str, idle: bool) -> bool:
        """Flip a known node between idle and busy. False if the node is unknown."""
        with self._lock:
            if name not in self._nodes.get(cloud, {}):
                return False
            self._nodes[cloud][name] = idle
        logger.debug(f"Node {name} in cloud {cloud} is now {'idle' if idle else 'busy'}")
        return True

    def names(self, cloud: str) -> set[str]:
        """Copy of the names known for a cloud, idle or busy."""
        with self._lock:
            return set(self._nodes.get(cloud, {}))

    def idle_names(self, cloud: str) -> set[str]:
        with self._lock:
            return {name for name, idle in self._nodes.get(cloud, {}).items() if idle}
