"""Attach the secondary network annotation to every workload's pod template."""

from kubernetes import client

from cni_migration.kube import ClusterClient
from cni_migration.logging_config import get_logger
from cni_migration.models.workload import WorkloadKind, WorkloadRef
from cni_migration.waiter import ReadinessWaiter

logger = get_logger(__name__)

ANNOTATED_KINDS = (WorkloadKind.DEPLOYMENT, WorkloadKind.DAEMONSET, WorkloadKind.STATEFULSET)


def _uses_host_network(obj) -> bool:
    spec = obj.spec.template.spec
    return bool(spec is not None and spec.host_network)


class WorkloadAnnotator:
    """Patch a network-attachment annotation onto workloads that lack it.

    Host-network workloads are skipped since they cannot take a secondary
    attachment.
    """

    def __init__(self, client: ClusterClient, waiter: ReadinessWaiter, key: str, value: str):
        self.client = client
        self.waiter = waiter
        self.key = key
        self.value = value

    def _needs_annotation(self, obj) -> bool:
        if _uses_host_network(obj):
            return False
        annotations = obj.spec.template.metadata.annotations if obj.spec.template.metadata else None
        return (annotations or {}).get(self.key) != self.value

    def _candidates(self):
        for namespace in self.client.list_namespaces():
            for kind in ANNOTATED_KINDS:
                for obj in self.client.list_workloads(kind, namespace):
                    if self._needs_annotation(obj):
                        yield kind, obj

    def pending(self) -> list[WorkloadRef]:
        """Workloads whose pod template is missing the annotation."""
        return [
            WorkloadRef(kind=kind, namespace=obj.metadata.namespace, name=obj.metadata.name)
            for kind, obj in self._candidates()
        ]

    def run(self, dryrun: bool = False) -> list[WorkloadRef]:
        """Annotate every pending workload and wait for each rollout.

        Returns:
            The workloads that were (or in dry-run, would be) annotated
        """
        annotated = []
        for kind, obj in self._candidates():
            ref = WorkloadRef(kind=kind, namespace=obj.metadata.namespace, name=obj.metadata.name)
            logger.info(f"Adding network attachment {self.key}={self.value} to {ref}")
            annotated.append(ref)
            if dryrun:
                continue

            template = obj.spec.template
            if template.metadata is None:
                template.metadata = client.V1ObjectMeta()
            template.metadata.annotations = {
                **(template.metadata.annotations or {}),
                self.key: self.value,
            }
            self.client.replace_workload(kind, obj)
            self.waiter.wait(ref)

        return annotated
