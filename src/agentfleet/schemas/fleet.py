"""Pydantic schemas for clouds, operations and allocations."""

from datetime import datetime
from pydantic import BaseModel

from agentfleet.models.operation import OperationKind


class OperationCreate(BaseModel):
    name: str
    zone: str
    name_prefix: str
    operation_id: str
    kind: OperationKind = OperationKind.INSERT


class OperationResponse(BaseModel):
    name: str
    zone: str
    name_prefix: str
    operation_id: str
    kind: OperationKind
    issued_at: datetime

    model_config = {"from_attributes": True}


class OperationListResponse(BaseModel):
    pending: list[OperationResponse]
    expired: list[OperationResponse]
    total: int


class OperationPollResponse(BaseModel):
    completed: list[OperationResponse]
    pending: int


class NodeListResponse(BaseModel):
    cloud: str
    nodes: list[str]
    idle: list[str]
    total: int


class InstanceResponse(BaseModel):
    name: str
    zone: str
    status: str
    labels: dict[str, str]


class AllocationRequest(BaseModel):
    configs: list[str] | None = None  # name prefixes; default: all of the cloud's configs


class AllocationResponse(BaseModel):
    cloud: str
    action: str  # "reuse", "create" or "none"
    config: str | None = None
    instance: InstanceResponse | None = None
