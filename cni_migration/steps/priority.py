"""Step 3: make the new plugin the primary network on every node."""

from kubernetes import client

from cni_migration.logging_config import StepLogger
from cni_migration.models.phase import MigrationPhase
from cni_migration.steps.base import NodeStep


class PriorityFlip(NodeStep):
    phase = MigrationPhase.PRIORITY_FLIP

    def node_done(self, node: client.V1Node) -> bool:
        return self.labels.is_priority_flipped(node.metadata.labels)

    def visit(self, name: str, dryrun: bool, log: StepLogger) -> None:
        log.info(f"Changing network priority to the new plugin on node {name}")
        if not dryrun:
            self.ctx.probe.check()
            self.ctx.store.mark_priority_flipped(name)

        self.roll_node(name, dryrun, log)
