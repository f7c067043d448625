"""Base compute provider interface."""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Iterator

from agentfleet.models.instance import WorkerInstance
from agentfleet.models.operation import OperationResult


class TransientProviderError(Exception):
    """Raised for any failed provider call (I/O, HTTP error, bad payload).

    Callers treat it as "unresolved" and retry on the next cycle.
    """
    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ComputeClient(ABC):
    """Blocking client for the compute provider."""

    @abstractmethod
    def list_instances(
        self, project: str, labels: dict[str, str] | None = None
    ) -> Iterator[WorkerInstance]:
        """Yield every instance in the project, optionally filtered by labels."""
        ...

    @abstractmethod
    def terminate_instance_async(self, project: str, zone: str, name: str) -> str:
        """Start deleting an instance. Returns the operation id."""
        ...

    @abstractmethod
    def get_operation_status(
        self, project: str, zone: str, operation_id: str
    ) -> OperationResult:
        """Fetch the current status of a zonal operation."""
        ...

    def close(self) -> None:
        """Release any held resources."""

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
