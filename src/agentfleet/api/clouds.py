"""Cloud API endpoints: operations, known nodes and allocation."""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool

from agentfleet.core.auth import verify_api_key
from agentfleet.fleet.cloud import ManagedCloud
from agentfleet.fleet.registry import CloudRegistry
from agentfleet.models.operation import PendingOperation
from agentfleet.providers.base import TransientProviderError
from agentfleet.schemas.fleet import (
    AllocationRequest,
    AllocationResponse,
    InstanceResponse,
    NodeListResponse,
    OperationCreate,
    OperationListResponse,
    OperationPollResponse,
    OperationResponse,
)

router = APIRouter(prefix="/clouds", tags=["clouds"])

# Cloud registry is initialized by the daemon on startup
_registry: CloudRegistry | None = None


def set_registry(registry: CloudRegistry | None):
    global _registry
    _registry = registry


def get_registry() -> CloudRegistry | None:
    return _registry


def _require_registry() -> CloudRegistry:
    if not _registry:
        raise HTTPException(503, "Cloud registry not initialized")
    return _registry


def _get_cloud(name: str) -> ManagedCloud:
    registry = _require_registry()
    try:
        return registry.get_cloud(name)
    except KeyError:
        raise HTTPException(404, f"Cloud '{name}' not found")
    except ValueError as e:
        raise HTTPException(400, f"Cloud '{name}' is misconfigured: {e}")


def _sorted(operations: frozenset[PendingOperation]) -> list[OperationResponse]:
    return [
        OperationResponse.model_validate(op)
        for op in sorted(operations, key=lambda o: (o.name, o.operation_id))
    ]


@router.get("")
async def list_clouds(_: str = Depends(verify_api_key)):
    """List configured clouds."""
    if not _registry:
        return {"clouds": [], "total": 0}
    clouds = [cloud.info() for cloud in _registry.managed_clouds()]
    return {"clouds": clouds, "total": len(clouds)}


@router.get("/{name}")
async def get_cloud(name: str, _: str = Depends(verify_api_key)):
    """Cloud details: configs, known node count, operation counts."""
    return _get_cloud(name).info()


@router.get("/{name}/operations", response_model=OperationListResponse)
async def list_operations(name: str, _: str = Depends(verify_api_key)):
    """Pending and expired operations for a cloud."""
    tracker = _get_cloud(name).tracker
    pending = tracker.get()
    return OperationListResponse(
        pending=_sorted(pending),
        expired=_sorted(tracker.expired()),
        total=len(pending),
    )


@router.post("/{name}/operations", response_model=OperationResponse)
async def record_operation(
    name: str,
    data: OperationCreate,
    _: str = Depends(verify_api_key),
):
    """Track an insert or delete issued by a provisioning component."""
    cloud = _get_cloud(name)
    op = cloud.record_operation(
        name=data.name,
        zone=data.zone,
        name_prefix=data.name_prefix,
        operation_id=data.operation_id,
        kind=data.kind,
    )
    return OperationResponse.model_validate(op)


@router.post("/{name}/operations/poll", response_model=OperationPollResponse)
async def poll_operations(name: str, _: str = Depends(verify_api_key)):
    """Poll the provider now and drop completed operations."""
    tracker = _get_cloud(name).tracker
    completed = await run_in_threadpool(tracker.remove_completed)
    return OperationPollResponse(
        completed=[OperationResponse.model_validate(op) for op in completed],
        pending=len(tracker.get()),
    )


@router.get("/{name}/nodes", response_model=NodeListResponse)
async def list_nodes(name: str, _: str = Depends(verify_api_key)):
    """Agent names the host currently knows for a cloud."""
    cloud = _get_cloud(name)
    nodes = sorted(cloud.get_known_node_names())
    idle = sorted(cloud.nodes.idle_names(cloud.name))
    return NodeListResponse(cloud=cloud.name, nodes=nodes, idle=idle, total=len(nodes))


@router.put("/{name}/nodes/{node}")
async def register_node(
    name: str,
    node: str,
    idle: bool = False,
    _: str = Depends(verify_api_key),
):
    """Mark an agent as live, protecting its instance from the lost-node sweep.

    Pass ?idle=true for a parked agent whose stopped instance may be reused.
    """
    cloud = _get_cloud(name)
    cloud.nodes.register(cloud.name, node, idle=idle)
    return {"status": "registered", "cloud": cloud.name, "node": node, "idle": idle}


@router.post("/{name}/nodes/{node}/idle")
async def mark_node_idle(name: str, node: str, _: str = Depends(verify_api_key)):
    """Park an agent: its stopped instance becomes eligible for reuse."""
    return _set_idle(name, node, True)


@router.post("/{name}/nodes/{node}/busy")
async def mark_node_busy(name: str, node: str, _: str = Depends(verify_api_key)):
    """Take an agent out of the reuse pool."""
    return _set_idle(name, node, False)


def _set_idle(name: str, node: str, idle: bool) -> dict:
    cloud = _get_cloud(name)
    if not cloud.nodes.set_idle(cloud.name, node, idle):
        raise HTTPException(404, f"Node '{node}' not found in cloud '{name}'")
    return {"status": "idle" if idle else "busy", "cloud": cloud.name, "node": node}


@router.delete("/{name}/nodes/{node}")
async def unregister_node(name: str, node: str, _: str = Depends(verify_api_key)):
    """Forget an agent."""
    cloud = _get_cloud(name)
    if not cloud.nodes.unregister(cloud.name, node):
        raise HTTPException(404, f"Node '{node}' not found in cloud '{name}'")
    return {"status": "removed", "cloud": cloud.name, "node": node}


@router.post("/{name}/allocate", response_model=AllocationResponse)
async def allocate(
    name: str,
    data: AllocationRequest | None = None,
    _: str = Depends(verify_api_key),
):
    """Choose a config (and possibly an idle instance) for one new agent."""
    cloud = _get_cloud(name)

    configs = None
    if data and data.configs is not None:
        configs = []
        for prefix in data.configs:
            config = cloud.get_config(prefix)
            if config is None:
                raise HTTPException(404, f"Config '{prefix}' not found in cloud '{name}'")
            configs.append(config)

    try:
        decision = await run_in_threadpool(cloud.allocate, configs)
    except TransientProviderError as e:
        raise HTTPException(503, f"Provider unavailable: {e}")

    if decision is None:
        return AllocationResponse(cloud=cloud.name, action="none")

    instance = None
    if decision.instance is not None:
        inst = decision.instance
        instance = InstanceResponse(
            name=inst.name,
            zone=inst.zone,
            status=getattr(inst.status, "value", inst.status),
            labels=inst.labels,
        )
    return AllocationResponse(
        cloud=cloud.name,
        action="reuse" if instance else "create",
        config=decision.config.name_prefix,
        instance=instance,
    )
