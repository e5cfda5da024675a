"""Presence checks and bulk deletion over resource sets.

Steps use this module to answer "have the required workloads been
installed?" and "has cleanup finished?" against live cluster state.
"""

from cni_migration.kube import ClusterClient
from cni_migration.logging_config import get_logger
from cni_migration.models.workload import ResourceSet, WorkloadRef

logger = get_logger(__name__)


class ResourceInventory:
    """Check and delete the workloads named in a ResourceSet."""

    def __init__(self, client: ClusterClient):
        """Initialize the inventory.

        Args:
            client: Cluster client used for every lookup
        """
        self.client = client

    def missing(self, resources: ResourceSet) -> list[WorkloadRef]:
        """Return the workloads in ``resources`` that do not exist.

        Raises:
            KubernetesError: If a lookup fails for any reason other than not found
        """
        missing = [ref for ref in resources.refs() if self.client.get_workload(ref) is None]
        for ref in missing:
            logger.debug(f"{ref} is not present")
        return missing

    def present(self, resources: ResourceSet) -> list[WorkloadRef]:
        """Return the workloads in ``resources`` that still exist."""
        return [ref for ref in resources.refs() if self.client.get_workload(ref) is not None]

    def has_all(self, resources: ResourceSet) -> bool:
        return not self.missing(resources)

    def has_none(self, resources: ResourceSet) -> bool:
        return not self.present(resources)

    def delete_all(self, resources: ResourceSet) -> list[WorkloadRef]:
        """Delete every workload in ``resources``, ignoring ones already gone.

        Returns:
            The workloads that were actually deleted
        """
        deleted = []
        for ref in resources.refs():
            if self.client.delete_workload(ref):
                logger.info(f"Deleted {ref}")
                deleted.append(ref)
            else:
                logger.debug(f"{ref} already absent")
        return deleted
