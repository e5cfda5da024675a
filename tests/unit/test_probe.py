"""Tests for the connectivity probe."""

import pytest

from cni_migration.config import ProbeConfig
from cni_migration.exceptions import ConnectivityError
from cni_migration.probe import ConnectivityProbe
from cni_migration.waiter import ReadinessWaiter
from fakes import PROBE, FakeCluster, FakeNodeOperations, make_daemonset, make_pod


@pytest.fixture
def probe_cluster():
    cluster = FakeCluster()
    cluster.add_workload(make_daemonset("knet-stress", "knet-stress", ready=2, desired=2))
    for node in ("worker-1", "worker-2"):
        cluster.add_pod(
            make_pod("knet-stress", f"knet-stress-{node}", node, labels={"app": "knet-stress"})
        )
    return cluster


def _probe(cluster, nodeops, timeout=0.05):
    waiter = ReadinessWaiter(cluster, timeout=0.05, interval=0.01)
    return ConnectivityProbe(cluster, nodeops, waiter, ProbeConfig(), timeout=timeout, interval=0.01)


def test_all_pods_healthy_passes_first_poll(probe_cluster):
    nodeops = FakeNodeOperations(probe_cluster)

    _probe(probe_cluster, nodeops).check()

    execs = [c for c in nodeops.calls if c[0] == "exec"]
    assert len(execs) == 2
    assert execs[0][3] == ("/knet-stress", "-status")


def test_one_unhealthy_pod_fails_after_deadline(probe_cluster):
    nodeops = FakeNodeOperations(probe_cluster, healthy=lambda pod: pod != "knet-stress-worker-2")

    with pytest.raises(ConnectivityError) as exc_info:
        _probe(probe_cluster, nodeops).check()

    assert "knet-stress-worker-2" in exc_info.value.details


def test_no_probe_pods_is_unhealthy(probe_cluster):
    probe_cluster.pods.clear()
    nodeops = FakeNodeOperations(probe_cluster)

    ok, failed = _probe(probe_cluster, nodeops).healthy()

    assert not ok
    assert failed == []


def test_recovers_once_pods_become_healthy(probe_cluster):
    attempts = []

    def healthy(pod):
        attempts.append(pod)
        return len(attempts) > 2

    nodeops = FakeNodeOperations(probe_cluster, healthy=healthy)

    _probe(probe_cluster, nodeops, timeout=1).check()


def test_restart_rolls_the_agent(probe_cluster):
    nodeops = FakeNodeOperations(probe_cluster)

    _probe(probe_cluster, nodeops).restart()

    assert ("rollout_restart", str(PROBE)) in nodeops.calls


def test_every_unhealthy_pod_is_reported(probe_cluster):
    nodeops = FakeNodeOperations(probe_cluster, healthy=False)

    with pytest.raises(ConnectivityError) as exc_info:
        _probe(probe_cluster, nodeops).check()

    assert "knet-stress-worker-1, knet-stress-worker-2" in exc_info.value.details
