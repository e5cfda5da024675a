"""Tests for each migration phase against an in-memory cluster."""

import pytest

from cni_migration.exceptions import ConfigurationError, ConnectivityError
from cni_migration.models.node import NodeState
from cni_migration.steps import Cleanup, Migrate, Preflight, Prepare, PriorityFlip, Roll
from fakes import CANAL, CILIUM, MULTUS, NODE_NAMES, PROBE, make_attachment


def _states(ctx):
    return ctx.store.states()


# Preflight


def test_preflight_ready_when_probe_healthy(ctx):
    assert Preflight(ctx).ready()


def test_preflight_not_ready_when_probe_fails(ctx, nodeops):
    nodeops.healthy = False

    assert not Preflight(ctx).ready()


def test_preflight_installs_missing_probe(ctx, cluster, nodeops):
    del cluster.workloads[PROBE]
    step = Preflight(ctx)
    assert not step.ready()

    step.run(dryrun=False)

    assert ("apply", "knet-stress.yaml", "knet-stress") in nodeops.calls
    assert step.ready()


def test_preflight_not_ready_while_probe_rolls_out(ctx, cluster, nodeops):
    cluster.workloads[PROBE].status.number_ready = 1

    assert not Preflight(ctx).ready()
    assert [c for c in nodeops.calls if c[0] == "exec"] == []


def test_preflight_dry_run_installs_nothing(ctx, cluster, nodeops):
    del cluster.workloads[PROBE]

    Preflight(ctx).run(dryrun=True)

    assert nodeops.mutations == []
    assert PROBE not in cluster.workloads


# Prepare


def test_prepare_three_nodes(ctx, cluster, nodeops, labels):
    step = Prepare(ctx)
    assert not step.ready()

    step.run(dryrun=False)

    assert set(_states(ctx).values()) == {NodeState.DUAL_PLUGIN}
    selector = cluster.workloads[CANAL].spec.template.spec.node_selector
    assert selector == {labels.dual_plugin: labels.value}
    assert CILIUM in cluster.workloads
    assert MULTUS in cluster.workloads
    assert ("apply", "cilium.yaml", "kube-system") in nodeops.calls
    assert step.ready()


def test_prepare_second_run_changes_nothing(ctx, cluster, nodeops):
    step = Prepare(ctx)
    step.run(dryrun=False)
    cluster_writes = list(cluster.mutations)
    node_ops = list(nodeops.mutations)

    step.run(dryrun=False)

    assert cluster.mutations == cluster_writes
    assert nodeops.mutations == node_ops


def test_prepare_dry_run_changes_nothing(ctx, cluster, nodeops):
    step = Prepare(ctx)

    step.run(dryrun=True)

    assert cluster.mutations == []
    assert nodeops.mutations == []
    assert not step.ready()


def test_prepare_relabels_node_carrying_both_plugin_labels(ctx, cluster, labels):
    cluster.nodes["worker-1"].metadata.labels = {
        labels.dual_plugin: labels.value,
        labels.new_plugin: labels.value,
    }
    assert _states(ctx)["worker-1"] == NodeState.INCONSISTENT

    Prepare(ctx).run(dryrun=False)

    assert cluster.labels("worker-1") == {labels.dual_plugin: labels.value}


def test_prepare_without_old_plugin(ctx, cluster):
    del cluster.workloads[CANAL]
    step = Prepare(ctx)

    step.run(dryrun=False)

    assert step.old_plugin_patched()
    assert step.ready()


def test_prepare_requires_manifest_for_missing_component(ctx, config):
    config.new_plugin.manifest = None

    with pytest.raises(ConfigurationError, match="no manifest"):
        Prepare(ctx).run(dryrun=False)


def test_prepare_superseded_after_migration(ctx, migrated_cluster, nodeops):
    del migrated_cluster.workloads[CANAL]
    del migrated_cluster.workloads[MULTUS]
    step = Prepare(ctx)

    assert step.ready()
    step.run(dryrun=False)

    assert migrated_cluster.mutations == []
    assert nodeops.mutations == []
    assert MULTUS not in migrated_cluster.workloads


def test_prepare_with_network_attachment(ctx, config, cluster, nodeops):
    config.network_attachment.enabled = True
    step = Prepare(ctx)

    step.run(dryrun=False)

    applied = {c[2] for c in nodeops.calls if c[:2] == ("apply", "net-attach.yaml")}
    assert applied == set(cluster.list_namespaces())
    assert ctx.annotator.pending() == []
    canal = cluster.workloads[CANAL]
    assert canal.spec.template.metadata.annotations == {
        config.network_attachment.annotation_key: config.network_attachment.annotation_value
    }
    assert step.ready()


def test_prepare_not_ready_while_attachment_missing(ctx, config, prepared_cluster):
    config.network_attachment.enabled = True
    ctx.annotator.run()
    for namespace in ("default", "kube-system"):
        prepared_cluster.add_custom(config.network_attachment.plural, make_attachment(namespace))
    step = Prepare(ctx)

    assert step.namespaces_without_attachment() == ["knet-stress"]
    assert not step.ready()


# Roll


def test_roll_all_nodes(ctx, prepared_cluster, nodeops, labels):
    step = Roll(ctx)
    assert not step.ready()

    step.run(dryrun=False)

    assert all(labels.is_rolled(prepared_cluster.labels(n)) for n in NODE_NAMES)
    assert [c[1] for c in nodeops.calls if c[0] == "drain"] == list(NODE_NAMES)
    assert [c[1] for c in nodeops.calls if c[0] == "uncordon"] == list(NODE_NAMES)
    assert not any(n.spec.unschedulable for n in prepared_cluster.nodes.values())
    assert not any(ns == "default" for ns, _ in prepared_cluster.pods)
    assert step.ready()


def test_roll_dry_run_changes_nothing(ctx, prepared_cluster, nodeops):
    step = Roll(ctx)
    before = step.ready()

    step.run(dryrun=True)

    assert prepared_cluster.mutations == []
    assert nodeops.mutations == []
    assert step.ready() == before


def test_roll_skips_rolled_nodes(ctx, prepared_cluster, nodeops, labels):
    prepared_cluster.nodes["worker-1"].metadata.labels[labels.rolled] = labels.value

    Roll(ctx).run(dryrun=False)

    assert [c[1] for c in nodeops.calls if c[0] == "cordon"] == ["worker-2", "worker-3"]


def test_roll_stops_on_connectivity_failure(ctx, prepared_cluster, nodeops, labels):
    nodeops.healthy = False

    with pytest.raises(ConnectivityError):
        Roll(ctx).run(dryrun=False)

    assert not any(labels.is_rolled(prepared_cluster.labels(n)) for n in NODE_NAMES)
    assert nodeops.mutations == []


# PriorityFlip


def test_priority_flip_all_nodes(ctx, rolled_cluster, nodeops, labels):
    step = PriorityFlip(ctx)
    assert not step.ready()

    step.run(dryrun=False)

    assert set(_states(ctx).values()) == {NodeState.PRIORITY_FLIPPED}
    assert all(labels.priority_old not in rolled_cluster.labels(n) for n in NODE_NAMES)
    assert len([c for c in nodeops.calls if c[0] == "drain"]) == 3
    assert step.ready()


def test_priority_flip_counts_migrated_nodes_as_done(ctx, migrated_cluster, nodeops):
    step = PriorityFlip(ctx)

    assert step.ready()
    step.run(dryrun=False)
    assert nodeops.mutations == []


# Migrate


def test_migrate_all_nodes(ctx, flipped_cluster, nodeops, labels):
    step = Migrate(ctx)
    assert not step.ready()

    step.run(dryrun=False)

    assert set(_states(ctx).values()) == {NodeState.MIGRATED}
    for name in NODE_NAMES:
        node = flipped_cluster.nodes[name]
        assert node.spec.taints is None
        assert not node.spec.unschedulable
        assert labels.dual_plugin not in node.metadata.labels
        assert labels.priority_new not in node.metadata.labels
    drains = [c for c in nodeops.calls if c[0] == "drain"]
    assert drains == [("drain", n, True) for n in NODE_NAMES]
    assert ("rollout_restart", str(PROBE)) in nodeops.calls
    assert step.ready()


def test_migrate_skips_migrated_node(ctx, flipped_cluster, nodeops, labels):
    node = flipped_cluster.nodes["worker-2"]
    node.metadata.labels = labels.migrated_labels(labels.cutover(node.metadata.labels))

    step = Migrate(ctx, ["worker-2"])
    assert step.ready()
    step.run(dryrun=False)

    assert flipped_cluster.mutations == []
    assert nodeops.mutations == []


def test_migrate_single_node(ctx, flipped_cluster):
    Migrate(ctx, ["worker-1"]).run(dryrun=False)

    states = _states(ctx)
    assert states["worker-1"] == NodeState.MIGRATED
    assert states["worker-2"] == NodeState.PRIORITY_FLIPPED
    assert Migrate(ctx, ["worker-1"]).ready()
    assert not Migrate(ctx).ready()
    assert not Migrate(ctx, ["worker-1"]).complete()


def test_migrate_leaves_node_tainted_when_connectivity_fails(ctx, flipped_cluster, nodeops, labels):
    # Probe fails as soon as the node is tainted
    nodeops.healthy = lambda pod: not flipped_cluster.nodes["worker-1"].spec.taints

    with pytest.raises(ConnectivityError):
        Migrate(ctx, ["worker-1"]).run(dryrun=False)

    node = flipped_cluster.nodes["worker-1"]
    assert [t.key for t in node.spec.taints] == [labels.new_plugin]
    assert node.spec.unschedulable
    assert _states(ctx)["worker-1"] == NodeState.CUTOVER


def test_migrate_dry_run_changes_nothing(ctx, flipped_cluster, nodeops):
    Migrate(ctx).run(dryrun=True)

    assert flipped_cluster.mutations == []
    assert nodeops.mutations == []


# Cleanup


def test_cleanup_removes_migration_resources(ctx, config, migrated_cluster, nodeops):
    migrated_cluster.add_custom(config.network_attachment.plural, make_attachment("default"))
    step = Cleanup(ctx)
    assert not step.ready()

    step.run(dryrun=False)

    assert CANAL not in migrated_cluster.workloads
    assert MULTUS not in migrated_cluster.workloads
    assert CILIUM in migrated_cluster.workloads
    assert ("delete", "multus-daemonset.yaml", "kube-system") in nodeops.calls
    assert migrated_cluster.custom == {}
    assert step.ready()


def test_cleanup_twice_is_harmless(ctx, migrated_cluster, nodeops):
    step = Cleanup(ctx)
    step.run(dryrun=False)
    cluster_writes = list(migrated_cluster.mutations)
    node_ops = list(nodeops.mutations)

    step.run(dryrun=False)

    assert migrated_cluster.mutations == cluster_writes
    assert nodeops.mutations == node_ops


def test_cleanup_dry_run_changes_nothing(ctx, migrated_cluster, nodeops):
    Cleanup(ctx).run(dryrun=True)

    assert migrated_cluster.mutations == []
    assert nodeops.mutations == []
    assert CANAL in migrated_cluster.workloads


def test_cleanup_strips_new_plugin_selector(ctx, config, migrated_cluster, labels):
    config.cleanup.remove_new_plugin_selector = True
    cilium = migrated_cluster.workloads[CILIUM]
    cilium.spec.template.spec.node_selector = {labels.new_plugin: labels.value}
    step = Cleanup(ctx)

    step.run(dryrun=False)

    assert migrated_cluster.workloads[CILIUM].spec.template.spec.node_selector is None
    assert step.ready()
