"""Worker instance model: a provider-side compute instance."""

from __future__ import annotations
import enum
from dataclasses import dataclass, field
from typing import Any


class InstanceStatus(str, enum.Enum):
    PROVISIONING = "PROVISIONING"
    STAGING = "STAGING"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"  # Delete/stop already in progress
    SUSPENDING = "SUSPENDING"
    SUSPENDED = "SUSPENDED"
    REPAIRING = "REPAIRING"
    TERMINATED = "TERMINATED"  # Stopped, disk kept; reusable


def _parse_status(value: str) -> InstanceStatus | str:
    try:
        return InstanceStatus(value)
    except ValueError:
        return value


@dataclass
class WorkerInstance:
    """A compute instance as last reported by the provider.

    Status transitions are driven by the provider; this object is a snapshot.
    """
    name: str
    zone: str
    status: InstanceStatus | str = InstanceStatus.RUNNING
    labels: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "WorkerInstance":
        """Build from a Compute Engine instance resource."""
        zone = payload.get("zone", "")
        return cls(
            name=payload["name"],
            zone=zone.rsplit("/", 1)[-1],
            status=_parse_status(payload.get("status", "")),
            labels=dict(payload.get("labels") or {}),
        )

    def config_name(self, label_key: str) -> str | None:
        """Name-prefix of the config that created this instance, if labelled."""
        return self.labels.get(label_key)

    @property
    def is_stopping(self) -> bool:
        return self.status == InstanceStatus.STOPPING
