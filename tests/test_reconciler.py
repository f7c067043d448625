"""Tests for the lost node reconciler."""

from unittest.mock import MagicMock

import pytest

from agentfleet.fleet.cloud import ManagedCloud
from agentfleet.fleet.nodes import NodeRegistry
from agentfleet.fleet.reconciler import LostNodeReconciler, find_orphans
from agentfleet.models.instance import InstanceStatus
from tests.conftest import FakeComputeClient, make_instance


def cloud_with(name: str, instances, known=(), client=None) -> ManagedCloud:
    client = client or FakeComputeClient(list(instances))
    nodes = NodeRegistry()
    for node in known:
        nodes.register(name, node)
    return ManagedCloud(name=name, project_id=f"{name}-project", client=client, nodes=nodes)


class TestFindOrphans:
    @pytest.mark.parametrize("status", list(InstanceStatus))
    def test_orphan_iff_not_stopping_and_unknown(self, status):
        inst = make_instance("w1", status=status)
        expected = status != InstanceStatus.STOPPING
        assert (find_orphans([inst], set()) == [inst]) is expected
        assert find_orphans([inst], {"w1"}) == []

    def test_unknown_status_string_is_candidate(self):
        inst = make_instance("w1", status="SOMETHING_NEW")
        assert find_orphans([inst], set()) == [inst]

    def test_mixed(self):
        known = make_instance("known")
        orphan = make_instance("orphan")
        stopping = make_instance("stopping", status=InstanceStatus.STOPPING)
        assert find_orphans([known, orphan, stopping], {"known"}) == [orphan]


class TestLostNodeReconciler:
    def test_terminates_only_orphans(self):
        cloud = cloud_with(
            "ci",
            [
                make_instance("agent-1", zone="z1"),
                make_instance("orphan-1", zone="z2"),
                make_instance("leaving", status=InstanceStatus.STOPPING),
            ],
            known=["agent-1"],
        )
        report = LostNodeReconciler(lambda: [cloud]).run()

        assert cloud.client.terminated == [("ci-project", "z2", "orphan-1")]
        assert report.terminated == ["orphan-1"]
        assert report.failed == []

    def test_only_lists_instances_of_this_cloud(self):
        client = FakeComputeClient([
            make_instance("mine", cloud="ci"),
            make_instance("theirs", cloud="other"),
        ])
        cloud = cloud_with("ci", [], client=client)
        LostNodeReconciler(lambda: [cloud]).run()
        assert [t[2] for t in client.terminated] == ["mine"]

    def test_terminate_failure_does_not_stop_sweep(self):
        client = FakeComputeClient([make_instance("bad"), make_instance("good")])
        client.fail_terminate.add("bad")
        cloud = cloud_with("ci", [], client=client)

        report = LostNodeReconciler(lambda: [cloud]).run()

        assert report.terminated == ["good"]
        assert report.failed == ["bad"]

    def test_failing_cloud_does_not_stop_others(self):
        broken_client = FakeComputeClient([make_instance("x", cloud="broken")])
        broken_client.fail_list = True
        broken = cloud_with("broken", [], client=broken_client)
        healthy = cloud_with("ci", [make_instance("orphan")])

        report = LostNodeReconciler(lambda: [broken, healthy]).run()

        assert report.clouds[0].error is not None
        assert report.clouds[1].terminated == ["orphan"]

    def test_unexpected_error_is_contained(self):
        cloud = MagicMock()
        cloud.name = "weird"
        cloud.get_all_instances.side_effect = RuntimeError("boom")
        healthy = cloud_with("ci", [make_instance("orphan")])

        report = LostNodeReconciler(lambda: [cloud, healthy]).run()

        assert "boom" in report.clouds[0].error
        assert report.terminated == ["orphan"]

    def test_cloud_enumeration_failure_returns_empty_report(self):
        def broken():
            raise RuntimeError("no clouds")

        report = LostNodeReconciler(broken).run()
        assert report.clouds == []

    def test_failed_terminate_retried_next_sweep(self):
        client = FakeComputeClient([make_instance("orphan")])
        client.fail_terminate.add("orphan")
        cloud = cloud_with("ci", [], client=client)
        reconciler = LostNodeReconciler(lambda: [cloud])

        reconciler.run()
        assert client.terminated == []

        client.fail_terminate.clear()
        reconciler.run()
        assert [t[2] for t in client.terminated] == ["orphan"]

    def test_does_not_touch_tracker(self):
        cloud = cloud_with("ci", [make_instance("orphan")])
        LostNodeReconciler(lambda: [cloud]).run()
        assert cloud.tracker.get() == frozenset()

    def test_report_to_dict(self):
        cloud = cloud_with("ci", [make_instance("orphan")])
        data = LostNodeReconciler(lambda: [cloud]).run().to_dict()
        assert data["terminated"] == ["orphan"]
        assert data["clouds"][0]["cloud"] == "ci"
        assert data["clouds"][0]["error"] is None
