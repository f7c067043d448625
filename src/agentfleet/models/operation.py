"""Pending operation model: an outstanding async insert/delete call."""

from __future__ import annotations
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


class OperationKind(str, enum.Enum):
    INSERT = "insert"
    DELETE = "delete"


class OperationStatus(str, enum.Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"


@dataclass
class OperationResult:
    """Provider answer to a status query."""
    status: OperationStatus | str
    error: dict[str, Any] | None = None

    @property
    def is_done(self) -> bool:
        return self.status == OperationStatus.DONE


@dataclass(frozen=True)
class PendingOperation:
    """An insert or delete issued against the provider but not yet confirmed.

    Two records with the same name, zone, name_prefix and operation_id are
    the same logical operation; kind and issued_at do not take part in
    equality.
    """
    name: str
    zone: str
    name_prefix: str
    operation_id: str
    kind: OperationKind = field(default=OperationKind.INSERT, compare=False)
    issued_at: datetime = field(
        default_factory=lambda: datetime.now(tz=timezone.utc), compare=False
    )

    def age_seconds(self, now: datetime | None = None) -> float:
        now = now or datetime.now(tz=timezone.utc)
        return (now - self.issued_at).total_seconds()
