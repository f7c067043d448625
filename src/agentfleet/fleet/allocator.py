"""Config allocator: picks which config (and idle instance) serves a request.

Selection runs in two phases:

1. Reuse: among configs with at least one provisionable instance, pick a
   config round-robin, then one of its provisionable instances round-robin.
2. Fresh capacity: among configs whose associated instance count is below
   max_instances, pick one round-robin and signal that a new instance
   should be created.

Both cursors keep counting across calls, so repeated single-node requests
spread over configs and instances instead of always hitting the first one.
"""

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Sequence, TypeVar

from agentfleet.models.instance import WorkerInstance
from agentfleet.models.worker_config import WorkerConfig

logger = logging.getLogger("agentfleet.allocator")

T = TypeVar("T")


class RoundRobinCursor:
    """Monotonically increasing pick index, safe to share between threads."""

    def __init__(self, start: int = 0):
        self._value = start
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        return self._value

    def next(self) -> int:
        """Return the current index and advance."""
        with self._lock:
            value = self._value
            self._value += 1
            return value

    def reset(self, value: int = 0) -> None:
        with self._lock:
            self._value = value

    def choose(self, items: Sequence[T]) -> T:
        return items[abs(self.next()) % len(items)]


@dataclass
class ConfigAndInstance:
    """Allocation decision. ``instance is None`` means create a new instance."""
    config: WorkerConfig
    instance: WorkerInstance | None = None

    @property
    def reuses_instance(self) -> bool:
        return self.instance is not None


class ConfigAllocator:
    """Chooses a (config, instance) pair for a new provisioning request."""

    def __init__(
        self,
        config_label_key: str,
        config_cursor: RoundRobinCursor | None = None,
        instance_cursor: RoundRobinCursor | None = None,
    ):
        self.config_label_key = config_label_key
        self.config_cursor = config_cursor or RoundRobinCursor()
        self.instance_cursor = instance_cursor or RoundRobinCursor()

    def instances_for_config(
        self, config: WorkerConfig, instances: Iterable[WorkerInstance]
    ) -> list[WorkerInstance]:
        """Instances whose config label matches the config's name prefix."""
        return [
            inst for inst in instances
            if inst.config_name(self.config_label_key) == config.name_prefix
        ]

    def configs_with_provisionable_instances(
        self, configs: Sequence[WorkerConfig], provisionable_instances: Sequence[WorkerInstance]
    ) -> list[WorkerConfig]:
        return [c for c in configs if self.instances_for_config(c, provisionable_instances)]

    def provisionable_instances_for_config(
        self, config: WorkerConfig, provisionable_instances: Sequence[WorkerInstance]
    ) -> list[WorkerInstance]:
        return self.instances_for_config(config, provisionable_instances)

    def configs_with_spare_capacity(
        self, configs: Sequence[WorkerConfig], all_instances: Sequence[WorkerInstance]
    ) -> list[WorkerConfig]:
        return [
            c for c in configs
            if len(self.instances_for_config(c, all_instances)) < c.max_instances
        ]

    def select(
        self,
        configs: Sequence[WorkerConfig],
        all_instances: Sequence[WorkerInstance],
        provisionable_instances: Sequence[WorkerInstance],
    ) -> ConfigAndInstance | None:
        """Pick a config, and an idle instance to reuse when one exists.

        Returns None when no config is suitable.
        """
        if provisionable_instances:
            candidates = self.configs_with_provisionable_instances(configs, provisionable_instances)
            if candidates:
                config = self.config_cursor.choose(candidates)
                instances = self.provisionable_instances_for_config(config, provisionable_instances)
                if instances:
                    instance = self.instance_cursor.choose(instances)
                    logger.debug(f"Reusing instance {instance.name} for config {config.name_prefix}")
                    return ConfigAndInstance(config, instance)

        candidates = self.configs_with_spare_capacity(configs, all_instances)
        if candidates:
            config = self.config_cursor.choose(candidates)
            logger.debug(f"Config {config.name_prefix} has spare capacity, new instance needed")
            return ConfigAndInstance(config)

        logger.debug(f"No suitable config among {len(configs)} candidates")
        return None
