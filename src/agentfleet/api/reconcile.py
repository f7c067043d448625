"""Reconcile API endpoint: run a lost-node sweep on demand."""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool

from agentfleet.api.clouds import get_registry
from agentfleet.core.auth import verify_api_key
from agentfleet.daemon.jobs import scheduled_reconcile

router = APIRouter(prefix="/reconcile", tags=["reconcile"])


@router.post("")
async def reconcile(_: str = Depends(verify_api_key)):
    """Sweep every cloud now and terminate instances no agent owns."""
    registry = get_registry()
    if not registry:
        raise HTTPException(503, "Cloud registry not initialized")
    report = await run_in_threadpool(scheduled_reconcile, registry)
    return report.to_dict()
