"""Tests for the scheduler module and maintenance jobs."""

import pytest

from agentfleet.daemon.jobs import scheduled_poll_operations, scheduled_reconcile
from agentfleet.daemon.scheduler import (
    get_scheduler, start_scheduler, stop_scheduler,
    add_interval_job, remove_job, list_jobs,
)
import agentfleet.daemon.scheduler as sched_module
from agentfleet.models.operation import OperationStatus
from tests.conftest import make_instance


@pytest.fixture(autouse=True)
def reset_scheduler():
    """Reset the global scheduler between tests."""
    sched_module._scheduler = None
    yield
    if sched_module._scheduler and sched_module._scheduler.running:
        sched_module._scheduler.shutdown(wait=False)
    sched_module._scheduler = None


class TestScheduler:
    @pytest.mark.asyncio
    async def test_start_stop(self):
        start_scheduler()
        scheduler = get_scheduler()
        assert scheduler.running
        stop_scheduler()

    @pytest.mark.asyncio
    async def test_add_interval_job(self):
        start_scheduler()

        def dummy(**kwargs):
            pass

        add_interval_job("test_interval", dummy, seconds=60)
        jobs = list_jobs()
        assert len(jobs) == 1
        assert jobs[0]["id"] == "test_interval"
        assert jobs[0]["next_run"] is not None
        stop_scheduler()

    @pytest.mark.asyncio
    async def test_add_replaces_existing(self):
        start_scheduler()

        def dummy(**kwargs):
            pass

        add_interval_job("tick", dummy, seconds=60)
        add_interval_job("tick", dummy, seconds=30)
        assert len(list_jobs()) == 1
        stop_scheduler()

    @pytest.mark.asyncio
    async def test_remove_job(self):
        start_scheduler()
        add_interval_job("tick", lambda: None, seconds=60)
        assert remove_job("tick") is True
        assert remove_job("tick") is False
        assert list_jobs() == []
        stop_scheduler()

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            add_interval_job("tick", lambda: None, seconds=0)


class TestJobs:
    def test_scheduled_reconcile(self, registry, fake_client):
        fake_client.instances = [make_instance("orphan"), make_instance("agent-1")]
        registry.nodes.register("ci", "agent-1")

        report = scheduled_reconcile(registry)

        assert report.terminated == ["orphan"]
        assert [t[2] for t in fake_client.terminated] == ["orphan"]

    def test_scheduled_poll_operations(self, registry, fake_client):
        cloud = registry.get_cloud("ci")
        cloud.record_operation("linux-1", "z", "linux", "op-1")
        cloud.record_operation("linux-2", "z", "linux", "op-2")
        fake_client.operation_status["op-1"] = OperationStatus.DONE

        assert scheduled_poll_operations(registry) == 1
        assert {op.name for op in cloud.tracker.get()} == {"linux-2"}

    def test_poll_failure_is_contained(self, registry, monkeypatch):
        cloud = registry.get_cloud("ci")

        def explode():
            raise RuntimeError("boom")

        monkeypatch.setattr(cloud.tracker, "remove_completed", explode)
        assert scheduled_poll_operations(registry) == 0
