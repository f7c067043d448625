"""Lost node reconciler: terminates provider instances nobody knows about."""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Protocol

from agentfleet.models.instance import WorkerInstance
from agentfleet.providers.base import ComputeClient, TransientProviderError

logger = logging.getLogger("agentfleet.reconciler")


class ReconcilableCloud(Protocol):
    name: str
    project_id: str
    client: ComputeClient

    def get_all_instances(self) -> Iterable[WorkerInstance]: ...

    def get_known_node_names(self) -> set[str]: ...


@dataclass
class CloudSweepResult:
    cloud: str
    terminated: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class ReconcileReport:
    clouds: list[CloudSweepResult] = field(default_factory=list)

    @property
    def terminated(self) -> list[str]:
        return [name for c in self.clouds for name in c.terminated]

    @property
    def failed(self) -> list[str]:
        return [name for c in self.clouds for name in c.failed]

    def to_dict(self) -> dict:
        return {
            "clouds": [
                {
                    "cloud": c.cloud,
                    "terminated": c.terminated,
                    "failed": c.failed,
                    "error": c.error,
                }
                for c in self.clouds
            ],
            "terminated": self.terminated,
            "failed": self.failed,
        }


def find_orphans(instances: Iterable[WorkerInstance], known_nodes: set[str]) -> list[WorkerInstance]:
    """Instances that are not already stopping and not in the known node set."""
    orphans = []
    for instance in instances:
        if instance.is_stopping:
            continue
        logger.debug(f"Checking instance {instance.name}")
        if instance.name not in known_nodes:
            orphans.append(instance)
    return orphans


class LostNodeReconciler:
    """Periodic sweep over every managed cloud.

    The host calls ``run()`` once per period. Each cloud is swept on its own;
    a failure on one instance or one cloud never stops the rest. Failed
    terminations are not retried here, the next sweep finds them again.
    """

    def __init__(self, list_clouds: Callable[[], Iterable[ReconcilableCloud]]):
        self._list_clouds = list_clouds

    def run(self) -> ReconcileReport:
        logger.debug("Starting clean lost nodes sweep")
        report = ReconcileReport()
        try:
            clouds = list(self._list_clouds())
        except Exception:
            logger.exception("Could not enumerate managed clouds")
            return report

        for cloud in clouds:
            report.clouds.append(self.clean_cloud(cloud))

        if report.terminated:
            logger.info(f"Lost node sweep terminated {len(report.terminated)} instance(s)")
        return report

    def clean_cloud(self, cloud: ReconcilableCloud) -> CloudSweepResult:
        result = CloudSweepResult(cloud=cloud.name)
        logger.debug(f"Cleaning cloud {cloud.name}")
        try:
            instances = list(cloud.get_all_instances())
            known_nodes = set(cloud.get_known_node_names())
            for instance in find_orphans(instances, known_nodes):
                if self.terminate_instance(cloud, instance):
                    result.terminated.append(instance.name)
                else:
                    result.failed.append(instance.name)
        except TransientProviderError as e:
            logger.warning(f"Error listing instances for cloud {cloud.name}: {e}")
            result.error = str(e)
        except Exception as e:
            logger.exception(f"Unexpected error cleaning cloud {cloud.name}")
            result.error = f"{type(e).__name__}: {e}"
        return result

    def terminate_instance(self, cloud: ReconcilableCloud, instance: WorkerInstance) -> bool:
        logger.info(f"Instance {instance.name} not found locally, removing it")
        try:
            cloud.client.terminate_instance_async(cloud.project_id, instance.zone, instance.name)
        except TransientProviderError as e:
            logger.warning(f"Error terminating instance {instance.name}: {e}")
            return False
        return True
