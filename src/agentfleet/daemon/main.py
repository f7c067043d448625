"""Agent Fleet daemon: FastAPI app with built-in maintenance scheduler."""

import logging
import uvicorn
from contextlib import asynccontextmanager
from fastapi import FastAPI

from agentfleet import __version__
from agentfleet.core.config import FleetSettings, get_settings
from agentfleet.api.router import api_router
from agentfleet.api.clouds import get_registry, set_registry
from agentfleet.daemon.jobs import (
    POLL_OPERATIONS_JOB_ID,
    RECONCILE_JOB_ID,
    scheduled_poll_operations,
    scheduled_reconcile,
)
from agentfleet.daemon.scheduler import add_interval_job, list_jobs, start_scheduler, stop_scheduler
from agentfleet.fleet.registry import CloudRegistry

logger = logging.getLogger("agentfleet")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown."""
    settings = app.state.settings

    registry = CloudRegistry.from_settings(settings)
    set_registry(registry)
    logger.info(f"Cloud registry initialized: {list(registry.list_clouds())}")

    add_interval_job(
        RECONCILE_JOB_ID,
        scheduled_reconcile,
        seconds=settings.reconcile_interval_seconds,
        kwargs={"registry": registry},
    )
    add_interval_job(
        POLL_OPERATIONS_JOB_ID,
        scheduled_poll_operations,
        seconds=settings.operation_poll_interval_seconds,
        kwargs={"registry": registry},
    )
    start_scheduler()

    yield

    # Shutdown
    stop_scheduler()
    registry.close()
    set_registry(None)
    logger.info("Agent Fleet daemon stopped")


def create_app(settings: FleetSettings | None = None) -> FastAPI:
    app = FastAPI(
        title="Agent Fleet",
        description="Keeps ephemeral cloud build agents consistent with the provider",
        version=__version__,
        lifespan=lifespan,
    )

    # Read once here; lifespan and auth use this copy
    app.state.settings = settings or get_settings()
    app.include_router(api_router)

    @app.get("/health")
    async def health():
        registry = get_registry()
        return {
            "status": "ok",
            "version": __version__,
            "scheduler_jobs": list_jobs(),
            "clouds": registry.list_clouds() if registry else {},
        }

    return app


def main():
    """Entry point for `agentfleetd` command."""
    import sys

    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S",
    )

    host = settings.host
    port = settings.port

    # Parse CLI args (simple, no dep on a CLI framework for the daemon)
    args = sys.argv[1:]
    for i, arg in enumerate(args):
        if arg == "--port" and i + 1 < len(args):
            port = int(args[i + 1])
        if arg == "--host" and i + 1 < len(args):
            host = args[i + 1]

    logger.info(f"Starting Agent Fleet daemon v{__version__} on {host}:{port}")
    logger.info(
        f"Lost-node sweep every {settings.reconcile_interval_seconds}s, "
        f"operation poll every {settings.operation_poll_interval_seconds}s"
    )

    app = create_app(settings)
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
