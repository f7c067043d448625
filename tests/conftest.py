"""Shared test fixtures for Agent Fleet tests."""

from typing import Iterator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from agentfleet.api.clouds import set_registry
from agentfleet.core.config import FleetSettings
from agentfleet.daemon.main import create_app
from agentfleet.fleet.registry import CloudRegistry
from agentfleet.models.instance import InstanceStatus, WorkerInstance
from agentfleet.models.operation import OperationResult, OperationStatus
from agentfleet.providers.base import ComputeClient, TransientProviderError

CONFIG_KEY = "agentfleet_config_name"
CLOUD_KEY = "agentfleet_cloud_id"


class FakeComputeClient(ComputeClient):
    """In-memory provider double.

    ``operation_status`` maps operation ids to a status string or to an
    exception to raise. ``fail_terminate`` names instances whose delete fails.
    """

    def __init__(self, instances: list[WorkerInstance] | None = None):
        self.instances = list(instances or [])
        self.operation_status: dict[str, object] = {}
        self.fail_terminate: set[str] = set()
        self.fail_list = False
        self.terminated: list[tuple[str, str, str]] = []
        self.status_queries: list[tuple[str, str, str]] = []
        self.closed = False

    def list_instances(self, project, labels=None) -> Iterator[WorkerInstance]:
        if self.fail_list:
            raise TransientProviderError("list failed", status_code=503)
        for inst in self.instances:
            if labels and any(inst.labels.get(k) != v for k, v in labels.items()):
                continue
            yield inst

    def terminate_instance_async(self, project, zone, name) -> str:
        if name in self.fail_terminate:
            raise TransientProviderError(f"cannot delete {name}")
        self.terminated.append((project, zone, name))
        return f"op-delete-{name}"

    def get_operation_status(self, project, zone, operation_id) -> OperationResult:
        self.status_queries.append((project, zone, operation_id))
        status = self.operation_status.get(operation_id, OperationStatus.RUNNING)
        if isinstance(status, Exception):
            raise status
        return OperationResult(status=status)

    def close(self):
        self.closed = True


def make_instance(
    name: str,
    config: str | None = None,
    status: InstanceStatus | str = InstanceStatus.RUNNING,
    zone: str = "us-central1-a",
    cloud: str | None = "ci",
) -> WorkerInstance:
    labels = {}
    if config is not None:
        labels[CONFIG_KEY] = config
    if cloud is not None:
        labels[CLOUD_KEY] = cloud
    return WorkerInstance(name=name, zone=zone, status=status, labels=labels)


CLOUDS_CONFIG = {
    "ci": {
        "project_id": "build-farm",
        "configs": [
            {"name_prefix": "linux", "max_instances": 2},
            {"name_prefix": "windows", "max_instances": 1},
        ],
    },
}


@pytest.fixture
def fake_client() -> FakeComputeClient:
    return FakeComputeClient()


@pytest.fixture
def registry(fake_client) -> CloudRegistry:
    return CloudRegistry(CLOUDS_CONFIG, client_factory=lambda config: fake_client)


@pytest_asyncio.fixture(scope="function")
async def app(registry):
    """Create a fresh app wired to the fake provider."""
    settings = FleetSettings(api_key="test_key", clouds=CLOUDS_CONFIG)

    _app = create_app(settings)
    set_registry(registry)

    yield _app

    set_registry(None)


@pytest_asyncio.fixture(scope="function")
async def client(app):
    """Async HTTP client pointed at the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"Authorization": "Bearer test_key"},
    ) as c:
        yield c


@pytest_asyncio.fixture(scope="function")
async def unauthed_client(app):
    """Async HTTP client without auth."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
