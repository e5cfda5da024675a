"""Common contract and collaborators for migration steps."""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from kubernetes import client

from cni_migration.annotator import WorkloadAnnotator
from cni_migration.config import Component, MigrationConfig
from cni_migration.exceptions import ConfigurationError
from cni_migration.inventory import ResourceInventory
from cni_migration.kube import ClusterClient
from cni_migration.lifecycle import NodeLifecycleController
from cni_migration.logging_config import StepLogger, get_logger
from cni_migration.models.phase import MigrationPhase
from cni_migration.nodeops import NodeOperations
from cni_migration.probe import ConnectivityProbe
from cni_migration.state import NodeStateStore
from cni_migration.waiter import ReadinessWaiter


@dataclass
class MigrationContext:
    """Everything a step needs to inspect and change the cluster."""

    config: MigrationConfig
    client: ClusterClient
    nodeops: NodeOperations
    cancel: threading.Event | None = None

    waiter: ReadinessWaiter = field(init=False)
    probe: ConnectivityProbe = field(init=False)
    inventory: ResourceInventory = field(init=False)
    store: NodeStateStore = field(init=False)
    lifecycle: NodeLifecycleController = field(init=False)
    annotator: WorkloadAnnotator = field(init=False)

    def __post_init__(self):
        timeouts = self.config.timeouts
        self.waiter = ReadinessWaiter(
            self.client, timeouts.readiness, timeouts.readiness_interval, self.cancel
        )
        self.probe = ConnectivityProbe(
            self.client,
            self.nodeops,
            self.waiter,
            self.config.probe,
            timeouts.connectivity,
            timeouts.connectivity_interval,
            self.cancel,
        )
        self.inventory = ResourceInventory(self.client)
        self.store = NodeStateStore(self.client, self.config.labels)
        self.lifecycle = NodeLifecycleController(
            self.client,
            self.nodeops,
            self.store,
            timeouts.pod_deletion,
            timeouts.pod_deletion_interval,
            self.cancel,
        )
        self.annotator = WorkloadAnnotator(
            self.client,
            self.waiter,
            self.config.network_attachment.annotation_key,
            self.config.network_attachment.annotation_value,
        )


class Step(ABC):
    """A migration phase.

    ``ready()`` is a side-effect-free check that the phase's exit condition
    holds across the cluster. ``run()`` performs only the changes still needed
    to get there, so calling it again after success does nothing.
    """

    phase: MigrationPhase

    def __init__(self, ctx: MigrationContext):
        self.ctx = ctx
        self.config = ctx.config
        self.labels = ctx.config.labels
        self.log = StepLogger(get_logger(type(self).__module__), self.phase.tag)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} step {self.phase.tag}>"

    @abstractmethod
    def ready(self) -> bool:
        """Return True if the phase's exit condition holds."""

    @abstractmethod
    def run(self, dryrun: bool) -> None:
        """Bring the cluster to the phase's exit condition."""

    def complete(self) -> bool:
        """Return True if the exit condition holds for the whole cluster.

        Later phases are gated on this rather than on :meth:`ready`, which
        only covers the nodes selected for this run.
        """
        return self.ready()

    def _install(self, component: Component, dryrun: bool, log: StepLogger) -> None:
        """Apply a component's manifest if its workload is missing, then wait for it."""
        if self.ctx.client.get_workload(component.ref) is not None:
            log.debug(f"{component.ref} already present")
            return

        if component.manifest is None:
            raise ConfigurationError(
                f"{component.ref} does not exist and no manifest is configured to create it",
                "Set a manifest for this component in the configuration file",
            )

        path = self.config.manifest_path(component.manifest)
        log.info(f"Creating {component.ref} from {path}")
        if not dryrun:
            self.ctx.nodeops.apply(path, component.namespace)
            self.ctx.waiter.wait(component.ref)

    def _wait_watched(self) -> None:
        """Wait for every watched workload that currently exists."""
        for ref in self.config.watched_resources.refs():
            if self.ctx.client.get_workload(ref) is None:
                self.log.debug(f"{ref} not present, not waiting for it")
                continue
            self.ctx.waiter.wait(ref)


class NodeStep(Step):
    """A phase that visits nodes one at a time."""

    def __init__(self, ctx: MigrationContext, nodes: list[str] | None = None):
        super().__init__(ctx)
        self.node_names = nodes

    def target_nodes(self) -> list[client.V1Node]:
        return self.ctx.store.nodes(self.node_names)

    @abstractmethod
    def node_done(self, node: client.V1Node) -> bool:
        """Return True if ``node`` already reached this phase's target state."""

    def ready(self) -> bool:
        for node in self.target_nodes():
            if not self.node_done(node):
                self.log.debug(f"Node {node.metadata.name} not done")
                return False
        self.log.info(f"Step {self.phase.value} ready")
        return True

    def complete(self) -> bool:
        if self.node_names is None:
            return self.ready()
        return all(self.node_done(node) for node in self.ctx.store.nodes())

    def run(self, dryrun: bool) -> None:
        log = self.log.with_dryrun(dryrun)
        for node in self.target_nodes():
            name = node.metadata.name
            if self.node_done(node):
                log.debug(f"Node {name} already done, skipping")
                continue
            self.visit(name, dryrun, log)

    @abstractmethod
    def visit(self, name: str, dryrun: bool, log: StepLogger) -> None:
        """Move a single node to this phase's target state."""

    def roll_node(self, name: str, dryrun: bool, log: StepLogger) -> None:
        """Evict every pod from a node and bring it back, checking connectivity."""
        log.info(f"Draining node {name}")
        if not dryrun:
            self.ctx.lifecycle.evict_node(name, settle=self._wait_watched)

        log.info(f"Uncordoning node {name}")
        if not dryrun:
            self.ctx.lifecycle.uncordon(name)
            self._wait_watched()
            self.ctx.probe.check()
