"""Managed cloud: one provider-backed pool of build agents."""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Iterator

from agentfleet.fleet.allocator import ConfigAllocator, ConfigAndInstance
from agentfleet.fleet.nodes import NodeRegistry
from agentfleet.fleet.tracker import InstanceOperationTracker
from agentfleet.models.instance import InstanceStatus, WorkerInstance
from agentfleet.models.operation import OperationKind, PendingOperation
from agentfleet.models.worker_config import WorkerConfig
from agentfleet.providers.base import ComputeClient

logger = logging.getLogger("agentfleet.cloud")

DEFAULT_CONFIG_LABEL_KEY = "agentfleet_config_name"
DEFAULT_CLOUD_ID_LABEL_KEY = "agentfleet_cloud_id"


@dataclass
class ManagedCloud:
    """Binds a project, its client, its configs and the local bookkeeping.

    Instances belong to this cloud when their cloud-id label equals
    ``cloud_id``; they belong to a config when their config label equals the
    config's name prefix.
    """
    name: str
    project_id: str
    client: ComputeClient
    configs: list[WorkerConfig] = field(default_factory=list)
    nodes: NodeRegistry = field(default_factory=NodeRegistry)
    tracker: InstanceOperationTracker | None = None
    allocator: ConfigAllocator | None = None
    cloud_id: str | None = None
    config_label_key: str = DEFAULT_CONFIG_LABEL_KEY
    cloud_id_label_key: str = DEFAULT_CLOUD_ID_LABEL_KEY

    def __post_init__(self):
        if self.cloud_id is None:
            self.cloud_id = self.name
        if self.tracker is None:
            self.tracker = InstanceOperationTracker(self.client, self.project_id)
        if self.allocator is None:
            self.allocator = ConfigAllocator(self.config_label_key)

    def get_all_instances(self) -> Iterator[WorkerInstance]:
        """Every provider instance labelled as belonging to this cloud."""
        return self.client.list_instances(
            self.project_id, labels={self.cloud_id_label_key: self.cloud_id}
        )

    def get_known_node_names(self) -> set[str]:
        return self.nodes.names(self.name)

    def get_config(self, name_prefix: str) -> WorkerConfig | None:
        for config in self.configs:
            if config.name_prefix == name_prefix:
                return config
        return None

    def record_operation(
        self,
        name: str,
        zone: str,
        name_prefix: str,
        operation_id: str,
        kind: OperationKind = OperationKind.INSERT,
    ) -> PendingOperation:
        operation = PendingOperation(
            name=name,
            zone=zone,
            name_prefix=name_prefix,
            operation_id=operation_id,
            kind=kind,
        )
        self.tracker.add(operation)
        return operation

    def provisionable_instances(self, instances: list[WorkerInstance]) -> list[WorkerInstance]:
        """Stopped instances of idle known nodes with no delete pending.

        Idle nodes stay registered, so the lost-node sweep leaves them alone.
        """
        idle = self.nodes.idle_names(self.name)
        deleting = {op.name for op in self.tracker.pending_deletes()}
        return [
            inst for inst in instances
            if inst.status == InstanceStatus.TERMINATED
            and inst.name in idle
            and inst.name not in deleting
        ]

    def instances_with_pending_inserts(self, instances: list[WorkerInstance]) -> list[WorkerInstance]:
        """Listed instances plus placeholders for inserts the provider hasn't shown yet."""
        listed = {inst.name for inst in instances}
        placeholders = [
            WorkerInstance(
                name=op.name,
                zone=op.zone,
                status=InstanceStatus.PROVISIONING,
                labels={
                    self.config_label_key: op.name_prefix,
                    self.cloud_id_label_key: self.cloud_id,
                },
            )
            for op in sorted(self.tracker.pending_inserts(), key=lambda o: o.name)
            if op.name not in listed
        ]
        return instances + placeholders

    def allocate(self, configs: list[WorkerConfig] | None = None) -> ConfigAndInstance | None:
        """Ask the allocator where the next agent should come from.

        Raises TransientProviderError when the instance list is unavailable.
        """
        instances = list(self.get_all_instances())
        decision = self.allocator.select(
            configs if configs is not None else self.configs,
            self.instances_with_pending_inserts(instances),
            self.provisionable_instances(instances),
        )
        if decision is None:
            logger.info(f"Cloud {self.name}: no config with spare capacity")
        elif decision.instance is not None:
            logger.info(
                f"Cloud {self.name}: reuse {decision.instance.name} ({decision.config.name_prefix})"
            )
        else:
            logger.info(f"Cloud {self.name}: create new instance ({decision.config.name_prefix})")
        return decision

    def info(self) -> dict:
        return {
            "name": self.name,
            "project_id": self.project_id,
            "cloud_id": self.cloud_id,
            "configs": [
                {"name_prefix": c.name_prefix, "max_instances": c.max_instances}
                for c in self.configs
            ],
            "known_nodes": len(self.get_known_node_names()),
            "idle_nodes": len(self.nodes.idle_names(self.name)),
            "operations": self.tracker.info(),
        }
