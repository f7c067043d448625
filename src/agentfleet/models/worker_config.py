"""Worker config model: operator-defined template for a pool of instances."""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class WorkerConfig:
    """A named instance template with a capacity limit.

    Instances carry ``name_prefix`` in a label to associate themselves
    with the config that created them.
    """
    name_prefix: str
    max_instances: int
    zone: str | None = None
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkerConfig":
        if "name_prefix" not in data:
            raise ValueError(f"Worker config missing required 'name_prefix' field: {data}")

        max_instances = int(data.get("max_instances", 1))
        if max_instances < 0:
            raise ValueError(
                f"Worker config '{data['name_prefix']}' has negative max_instances: {max_instances}"
            )

        return cls(
            name_prefix=data["name_prefix"],
            max_instances=max_instances,
            zone=data.get("zone"),
            description=data.get("description", ""),
        )
