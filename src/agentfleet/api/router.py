"""Main API router."""

from fastapi import APIRouter
from agentfleet.api.clouds import router as clouds_router
from agentfleet.api.reconcile import router as reconcile_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(clouds_router)
api_router.include_router(reconcile_router)
