"""Reads and writes of the label-encoded migration state of each node."""

from collections.abc import Callable

import tenacity
from kubernetes import client

from cni_migration.exceptions import ConflictError
from cni_migration.kube import ClusterClient
from cni_migration.logging_config import get_logger
from cni_migration.models.node import NodeLabels, NodeState

logger = get_logger(__name__)

LabelTransform = Callable[[dict[str, str] | None], dict[str, str]]


class NodeStateStore:
    """Single place where node labels and taints are read and written.

    Every read goes to the API server; nothing is cached between calls.
    Writes are read-modify-write and are retried from a fresh read when
    another writer updated the node in between.
    """

    def __init__(self, client: ClusterClient, labels: NodeLabels):
        self.client = client
        self.labels = labels

    def nodes(self, names: list[str] | None = None) -> list[client.V1Node]:
        """All nodes, or the named nodes in the given order."""
        if names is None:
            return self.client.list_nodes()
        return [self.client.get_node(name) for name in names]

    def state(self, node: client.V1Node) -> NodeState:
        return self.labels.state(node.metadata.labels)

    def states(self) -> dict[str, NodeState]:
        return {n.metadata.name: self.state(n) for n in self.client.list_nodes()}

    @tenacity.retry(
        wait=tenacity.wait_fixed(1),
        stop=tenacity.stop_after_attempt(5),
        retry=tenacity.retry_if_exception_type(ConflictError),
        before_sleep=lambda state: logger.warning(
            f"Node update conflicted, retrying (attempt {state.attempt_number})"
        ),
        reraise=True,
    )
    def mutate(self, name: str, change: Callable[[client.V1Node], bool]) -> client.V1Node:
        """Apply ``change`` to a freshly read node and write it back.

        ``change`` edits the node in place and returns False when the node is
        already in the wanted state, in which case nothing is written.
        """
        node = self.client.get_node(name)
        if not change(node):
            logger.debug(f"Node {name} already up to date")
            return node
        return self.client.replace_node(node)

    def relabel(self, name: str, transform: LabelTransform) -> client.V1Node:
        """Replace the labels of ``name`` with ``transform(labels)``."""

        def change(node: client.V1Node) -> bool:
            updated = transform(node.metadata.labels)
            if updated == (node.metadata.labels or {}):
                return False
            node.metadata.labels = updated
            return True

        return self.mutate(name, change)

    def mark_prepared(self, name: str) -> client.V1Node:
        return self.relabel(name, self.labels.prepared)

    def mark_rolled(self, name: str) -> client.V1Node:
        return self.relabel(name, self.labels.rolled_labels)

    def mark_priority_flipped(self, name: str) -> client.V1Node:
        return self.relabel(name, self.labels.flipped)

    def mark_migrated(self, name: str) -> client.V1Node:
        return self.relabel(name, self.labels.migrated_labels)
