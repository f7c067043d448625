"""Maintenance jobs: called by APScheduler in its worker threads."""

import logging

from agentfleet.fleet.reconciler import LostNodeReconciler, ReconcileReport
from agentfleet.fleet.registry import CloudRegistry

logger = logging.getLogger("agentfleet.jobs")

RECONCILE_JOB_ID = "reconcile-lost-nodes"
POLL_OPERATIONS_JOB_ID = "poll-operations"


def scheduled_reconcile(registry: CloudRegistry) -> ReconcileReport:
    """One lost-node sweep over every managed cloud."""
    logger.debug("Scheduled reconcile triggered")
    return LostNodeReconciler(registry.managed_clouds).run()


def scheduled_poll_operations(registry: CloudRegistry) -> int:
    """Drop completed operations from every cloud's tracker.

    Returns the number of operations that completed.
    """
    completed = 0
    for cloud in registry.managed_clouds():
        try:
            completed += len(cloud.tracker.remove_completed())
        except Exception:
            logger.exception(f"Operation poll failed for cloud {cloud.name}")
    return completed
