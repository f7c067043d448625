"""Built-in scheduler: drives the periodic maintenance ticks."""

from __future__ import annotations
import logging
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger("agentfleet.scheduler")

_scheduler: AsyncIOScheduler | None = None


def get_scheduler() -> AsyncIOScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler()
    return _scheduler


def start_scheduler():
    scheduler = get_scheduler()
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")


def stop_scheduler():
    scheduler = get_scheduler()
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def add_interval_job(
    job_id: str,
    func,
    seconds: int,
    kwargs: dict | None = None,
):
    """Add an interval-based job. A run never overlaps the previous one."""
    if seconds <= 0:
        raise ValueError(f"Invalid interval for job '{job_id}': {seconds}s")

    scheduler = get_scheduler()
    scheduler.add_job(
        func,
        trigger=IntervalTrigger(seconds=seconds),
        id=job_id,
        kwargs=kwargs or {},
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    logger.info(f"Scheduled job '{job_id}' every {seconds}s")


def remove_job(job_id: str) -> bool:
    scheduler = get_scheduler()
    try:
        scheduler.remove_job(job_id)
    except JobLookupError:
        return False
    logger.info(f"Removed job '{job_id}'")
    return True


def list_jobs() -> list[dict]:
    scheduler = get_scheduler()
    jobs = []
    for job in scheduler.get_jobs():
        next_run = getattr(job, "next_run_time", None)
        jobs.append({
            "id": job.id,
            "next_run": next_run.isoformat() if next_run else None,
            "trigger": str(job.trigger),
        })
    return jobs
