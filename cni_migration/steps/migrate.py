"""Step 4: move each node onto the new plugin alone.

A node is cordoned and drained, then tainted ``NoExecute`` with the
new-plugin key so nothing but tolerating system pods can run while its
labels switch over. Remaining pods are deleted and rescheduled through the
new plugin before the taint is lifted and the node is marked migrated.
"""

from kubernetes import client

from cni_migration.logging_config import StepLogger
from cni_migration.models.phase import MigrationPhase
from cni_migration.steps.base import NodeStep


class Migrate(NodeStep):
    phase = MigrationPhase.MIGRATE

    def node_done(self, node: client.V1Node) -> bool:
        return self.labels.is_migrated(node.metadata.labels)

    def visit(self, name: str, dryrun: bool, log: StepLogger) -> None:
        labels = self.labels
        taint = labels.cutover_taint()
        lifecycle = self.ctx.lifecycle

        log.info(f"Migrating node {name}")
        log.info(f"Draining node {name}")
        if not dryrun:
            self.ctx.probe.check()
            lifecycle.cordon(name)
            lifecycle.drain(name, delete_local_data=True)

        log.info(f"Adding {taint} taint to node {name}")
        if not dryrun:
            lifecycle.add_taint(
                name,
                taint,
                set_labels={labels.new_plugin: labels.value},
                remove_labels=[labels.dual_plugin],
            )

        log.info(f"Removing pods on node {name}")
        if not dryrun:
            self.ctx.waiter.wait(self.config.new_plugin.ref)
            self.ctx.probe.restart()
            lifecycle.delete_pods_on_node(name)
            self._wait_watched()
            self.ctx.probe.check()

        log.info(f"Removing {taint} taint from node {name}")
        if not dryrun:
            lifecycle.remove_taint(name, taint.key)

        log.info(f"Uncordoning node {name}")
        if not dryrun:
            lifecycle.uncordon(name)
            self._wait_watched()

        log.info(f"Adding label {labels.migrated}={labels.value} to node {name}")
        if not dryrun:
            self.ctx.store.mark_migrated(name)
            self.ctx.probe.check()
