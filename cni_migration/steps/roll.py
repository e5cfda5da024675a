"""Step 2: restart every pod on every node so it picks up the dual-plugin setup."""

from kubernetes import client

from cni_migration.logging_config import StepLogger
from cni_migration.models.phase import MigrationPhase
from cni_migration.steps.base import NodeStep


class Roll(NodeStep):
    phase = MigrationPhase.ROLL

    def node_done(self, node: client.V1Node) -> bool:
        return self.labels.is_rolled(node.metadata.labels)

    def visit(self, name: str, dryrun: bool, log: StepLogger) -> None:
        log.info(f"Rolling node {name}")
        if not dryrun:
            self.ctx.probe.check()

        self.roll_node(name, dryrun, log)

        log.info(f"Adding rolled label to node {name}")
        if not dryrun:
            self.ctx.store.mark_rolled(name)
