"""Cordon, drain, evict, taint and uncordon a single node."""

import threading
from collections.abc import Callable

from kubernetes import client

from cni_migration.exceptions import KubernetesError
from cni_migration.kube import ClusterClient
from cni_migration.logging_config import get_logger
from cni_migration.models.node import NodeTaint
from cni_migration.nodeops import NodeOperations
from cni_migration.polling import poll_until
from cni_migration.state import NodeStateStore

logger = get_logger(__name__)


class NodeLifecycleController:
    """Evacuate a node and bring it back, blocking on each post-condition."""

    def __init__(
        self,
        client: ClusterClient,
        nodeops: NodeOperations,
        store: NodeStateStore,
        pod_deletion_timeout: float = 300,
        pod_deletion_interval: float = 1,
        cancel: threading.Event | None = None,
    ):
        self.client = client
        self.nodeops = nodeops
        self.store = store
        self.pod_deletion_timeout = pod_deletion_timeout
        self.pod_deletion_interval = pod_deletion_interval
        self.cancel = cancel

    def cordon(self, node: str) -> None:
        logger.info(f"Cordoning node {node}")
        self.nodeops.cordon(node)

    def uncordon(self, node: str) -> None:
        logger.info(f"Uncordoning node {node}")
        self.nodeops.uncordon(node)

    def drain(self, node: str, delete_local_data: bool = False) -> None:
        logger.info(f"Draining node {node}")
        self.nodeops.drain(node, delete_local_data=delete_local_data)

    def pods_on_node(self, node: str) -> list[client.V1Pod]:
        """Non-host-network pods scheduled to ``node``, across all namespaces."""
        pods = []
        for namespace in self.client.list_namespaces():
            for pod in self.client.list_pods(namespace):
                if pod.spec.node_name == node and not pod.spec.host_network:
                    pods.append(pod)
        return pods

    def delete_pods_on_node(self, node: str) -> None:
        """Delete every non-host-network pod on ``node`` and wait until each is gone.

        A pod counts as gone once its name no longer resolves to the same UID,
        so controllers recreating a pod under the same name do not block.

        Raises:
            KubernetesError: If pods still exist after the deletion timeout
        """
        logger.info(f"Deleting all pods on node {node}")
        pending = {}
        for pod in self.pods_on_node(node):
            key = (pod.metadata.namespace, pod.metadata.name)
            logger.debug(f"Deleting pod {key[0]}/{key[1]} on node {node}")
            self.client.delete_pod(*key)
            pending[key] = pod.metadata.uid

        def check() -> tuple[bool, list[str]]:
            for key, uid in list(pending.items()):
                current = self.client.get_pod(*key)
                if current is None or current.metadata.uid != uid:
                    del pending[key]
            return not pending, [f"{ns}/{name}" for ns, name in pending]

        done, remaining = poll_until(
            check, self.pod_deletion_timeout, self.pod_deletion_interval, self.cancel
        )
        if not done:
            raise KubernetesError(
                f"Pods on node {node} were not deleted within {self.pod_deletion_timeout:g}s",
                f"Still present: {', '.join(remaining)}",
            )

    def evict_node(
        self,
        node: str,
        delete_local_data: bool = False,
        settle: Callable[[], None] | None = None,
    ) -> None:
        """Cordon and drain ``node``, then force out anything the drain left.

        Args:
            node: Node name
            delete_local_data: Also evict pods using emptyDir storage
            settle: Called between the drain and the forced deletion, typically
                to wait for evicted workloads to reschedule
        """
        self.cordon(node)
        self.drain(node, delete_local_data=delete_local_data)
        if settle is not None:
            settle()
        self.delete_pods_on_node(node)

    def add_taint(
        self,
        node: str,
        taint: NodeTaint,
        set_labels: dict[str, str] | None = None,
        remove_labels: list[str] | None = None,
    ) -> None:
        """Add ``taint`` unless a taint with the same key exists.

        Label changes are written in the same update as the taint.
        """
        logger.info(f"Adding taint {taint} to node {node}")

        def change(obj: client.V1Node) -> bool:
            changed = False
            taints = list(obj.spec.taints or [])
            if not any(t.key == taint.key for t in taints):
                taints.append(taint.to_kubernetes())
                obj.spec.taints = taints
                changed = True

            labels = dict(obj.metadata.labels or {})
            for key in remove_labels or []:
                if key in labels:
                    del labels[key]
                    changed = True
            for key, value in (set_labels or {}).items():
                if labels.get(key) != value:
                    labels[key] = value
                    changed = True
            obj.metadata.labels = labels
            return changed

        self.store.mutate(node, change)

    def remove_taint(self, node: str, key: str) -> None:
        logger.info(f"Removing taint {key} from node {node}")

        def change(obj: client.V1Node) -> bool:
            taints = obj.spec.taints or []
            kept = [t for t in taints if t.key != key]
            if len(kept) == len(taints):
                return False
            obj.spec.taints = kept or None
            return True

        self.store.mutate(node, change)
