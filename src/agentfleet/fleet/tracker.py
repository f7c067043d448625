"""Instance operation tracker: in-flight inserts and deletes, polled until done."""

from __future__ import annotations
import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from agentfleet.models.operation import OperationKind, PendingOperation
from agentfleet.providers.base import ComputeClient, TransientProviderError

logger = logging.getLogger("agentfleet.tracker")


class InstanceOperationTracker:
    """De-duplicated set of outstanding operations for one project.

    The pending set is an immutable snapshot. Writers build a new frozenset
    and publish it with one assignment, so readers see either the old set or
    the new one. Provider polling happens outside the writer lock; only the
    final publish is serialized, which keeps an add() made during a poll.

    With ``max_age`` set, operations that stay unfinished longer than that
    are moved to ``expired()`` instead of being tracked forever.
    """

    def __init__(
        self,
        client: ComputeClient,
        project_id: str,
        max_age: timedelta | None = None,
    ):
        self.client = client
        self.project_id = project_id
        self.max_age = max_age
        self._operations: frozenset[PendingOperation] = frozenset()
        self._expired: frozenset[PendingOperation] = frozenset()
        self._write_lock = threading.Lock()

    def add(self, operation: PendingOperation) -> None:
        """Track an operation. Re-adding an equal operation is a no-op."""
        with self._write_lock:
            if operation in self._operations:
                return
            self._operations = self._operations | {operation}
        logger.debug(f"Instance {operation.kind.value} operation added: {operation.name}")

    def enqueue_insert(self, operation: PendingOperation) -> PendingOperation:
        operation = _with_kind(operation, OperationKind.INSERT)
        self.add(operation)
        return operation

    def enqueue_delete(self, operation: PendingOperation) -> PendingOperation:
        operation = _with_kind(operation, OperationKind.DELETE)
        self.add(operation)
        return operation

    def get(self) -> frozenset[PendingOperation]:
        """Current snapshot. Never calls the provider."""
        return self._operations

    def pending_inserts(self) -> frozenset[PendingOperation]:
        return frozenset(op for op in self._operations if op.kind == OperationKind.INSERT)

    def pending_deletes(self) -> frozenset[PendingOperation]:
        return frozenset(op for op in self._operations if op.kind == OperationKind.DELETE)

    def expired(self) -> frozenset[PendingOperation]:
        """Operations dropped by the max-age policy, never confirmed done."""
        return self._expired

    def clear_expired(self) -> None:
        with self._write_lock:
            self._expired = frozenset()

    def is_operation_done(self, operation: PendingOperation) -> bool:
        """Ask the provider whether an operation finished.

        Query failures count as not done.
        """
        try:
            result = self.client.get_operation_status(
                self.project_id, operation.zone, operation.operation_id
            )
        except TransientProviderError as e:
            logger.warning(
                f"Operation status query failed for {operation.name} "
                f"({operation.operation_id}): {e}"
            )
            return False

        if result.is_done and result.error:
            logger.warning(
                f"Instance {operation.kind.value} of {operation.name} finished with error: {result.error}"
            )
        return result.is_done

    def remove_completed(self, now: datetime | None = None) -> list[PendingOperation]:
        """Poll every pending operation and drop the ones the provider reports done.

        Returns the completed operations.
        """
        old_operations = self._operations
        completed = {op for op in old_operations if self.is_operation_done(op)}
        stale = self._find_stale(old_operations - completed, now)

        with self._write_lock:
            self._operations = self._operations - completed - stale
            if stale:
                self._expired = self._expired | stale

        completed_names = sorted(op.name for op in completed)
        if completed_names:
            logger.info(f"Instance operations completed: [{', '.join(completed_names)}]")
        for op in sorted(stale, key=lambda o: o.name):
            logger.warning(
                f"Instance {op.kind.value} operation {op.operation_id} for {op.name} "
                f"not done after {int(op.age_seconds(now))}s, marking as failed"
            )
        return sorted(completed, key=lambda o: o.name)

    def _find_stale(
        self, operations: frozenset[PendingOperation], now: datetime | None
    ) -> frozenset[PendingOperation]:
        if self.max_age is None:
            return frozenset()
        now = now or datetime.now(tz=timezone.utc)
        limit = self.max_age.total_seconds()
        return frozenset(op for op in operations if op.age_seconds(now) > limit)

    def info(self) -> dict:
        return {
            "project_id": self.project_id,
            "pending": len(self._operations),
            "pending_inserts": len(self.pending_inserts()),
            "pending_deletes": len(self.pending_deletes()),
            "expired": len(self._expired),
        }


def _with_kind(operation: PendingOperation, kind: OperationKind) -> PendingOperation:
    if operation.kind == kind:
        return operation
    return replace(operation, kind=kind)
