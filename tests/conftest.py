"""Pytest configuration and shared fixtures."""

import pytest
import tenacity
from hypothesis import Verbosity, settings

from cni_migration.config import MigrationConfig, TimeoutConfig
from cni_migration.state import NodeStateStore
from cni_migration.steps import MigrationContext
from fakes import (
    CANAL,
    FAST_TIMEOUTS,
    NODE_NAMES,
    FakeCluster,
    FakeNodeOperations,
    make_attachment,
    make_daemonset,
    make_node,
    make_pod,
)

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

# Load the default profile
settings.load_profile("default")


@pytest.fixture(scope="session", autouse=True)
def no_retry_wait():
    """Retry node update conflicts without sleeping."""
    retrying = NodeStateStore.mutate.retry
    original = retrying.wait
    retrying.wait = tenacity.wait_none()
    yield
    retrying.wait = original


@pytest.fixture
def config(tmp_path):
    """Default configuration with timeouts short enough for tests."""
    return MigrationConfig(resources_directory=tmp_path, timeouts=TimeoutConfig(**FAST_TIMEOUTS))


@pytest.fixture
def labels(config):
    return config.labels


@pytest.fixture
def cluster():
    """Three unprepared nodes running the old plugin and the probe agent."""
    cluster = FakeCluster()
    for name in NODE_NAMES:
        cluster.add_node(make_node(name))
        cluster.add_pod(
            make_pod(
                "knet-stress",
                f"knet-stress-{name}",
                name,
                labels={"app": "knet-stress"},
                owner_kind="DaemonSet",
            )
        )
        cluster.add_pod(make_pod("default", f"app-{name}", name))
    cluster.add_workload(make_daemonset("kube-system", "canal", ready=3, desired=3))
    cluster.add_workload(make_daemonset("knet-stress", "knet-stress", ready=3, desired=3))
    return cluster


@pytest.fixture
def manifests():
    """Objects created by each manifest file when applied."""
    return {
        "cilium.yaml": [make_daemonset("kube-system", "cilium", ready=3, desired=3)],
        "multus-daemonset.yaml": [
            make_daemonset("kube-system", "kube-multus-ds-amd64", ready=3, desired=3)
        ],
        "knet-stress.yaml": [make_daemonset("knet-stress", "knet-stress", ready=3, desired=3)],
        "net-attach.yaml": [make_attachment("placeholder")],
    }


@pytest.fixture
def nodeops(cluster, manifests):
    return FakeNodeOperations(cluster, manifests)


@pytest.fixture
def ctx(config, cluster, nodeops):
    return MigrationContext(config, cluster, nodeops)


@pytest.fixture
def prepared_cluster(cluster, labels):
    """Cluster as left by a successful prepare step."""
    for name in NODE_NAMES:
        cluster.nodes[name].metadata.labels = labels.prepared(cluster.labels(name))
    canal = cluster.workloads[CANAL]
    canal.spec.template.spec.node_selector = {labels.dual_plugin: labels.value}
    cluster.add_workload(make_daemonset("kube-system", "cilium", ready=3, desired=3))
    cluster.add_workload(make_daemonset("kube-system", "kube-multus-ds-amd64", ready=3, desired=3))
    return cluster


def _relabel(cluster, transform):
    for name in NODE_NAMES:
        cluster.nodes[name].metadata.labels = transform(cluster.labels(name))


@pytest.fixture
def rolled_cluster(prepared_cluster, labels):
    _relabel(prepared_cluster, labels.rolled_labels)
    return prepared_cluster


@pytest.fixture
def flipped_cluster(rolled_cluster, labels):
    _relabel(rolled_cluster, labels.flipped)
    return rolled_cluster


@pytest.fixture
def migrated_cluster(flipped_cluster, labels):
    _relabel(flipped_cluster, lambda current: labels.migrated_labels(labels.cutover(current)))
    return flipped_cluster
