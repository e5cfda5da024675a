"""Wait for workloads to finish rolling out."""

import threading

from cni_migration.exceptions import KubernetesError, ReadinessTimeoutError
from cni_migration.kube import ClusterClient
from cni_migration.logging_config import get_logger
from cni_migration.models.workload import Readiness, ResourceSet, WorkloadRef
from cni_migration.polling import poll_until

logger = get_logger(__name__)


class ReadinessWaiter:
    """Poll workloads until their ready count matches the desired count."""

    def __init__(
        self,
        client: ClusterClient,
        timeout: float = 300,
        interval: float = 2,
        cancel: threading.Event | None = None,
    ):
        self.client = client
        self.timeout = timeout
        self.interval = interval
        self.cancel = cancel

    def status(self, ref: WorkloadRef) -> Readiness:
        """Current readiness of a workload.

        Raises:
            KubernetesError: If the workload does not exist
        """
        obj = self.client.get_workload(ref)
        if obj is None:
            raise KubernetesError(f"{ref} not found", "Cannot wait for a workload that does not exist")
        return Readiness.from_workload(ref.kind, obj)

    def wait(self, ref: WorkloadRef) -> Readiness:
        """Block until ``ref`` is fully ready.

        Raises:
            ReadinessTimeoutError: With the last observed counts if the deadline passes
        """

        def check() -> tuple[bool, Readiness]:
            readiness = self.status(ref)
            if not readiness.complete:
                logger.info(f"{ref} {readiness}")
            return readiness.complete, readiness

        ready, readiness = poll_until(check, self.timeout, self.interval, self.cancel)
        if not ready:
            raise ReadinessTimeoutError(str(ref), readiness.ready, readiness.desired, self.timeout)

        logger.info(f"{ref} ready")
        return readiness

    def wait_all(self, resources: ResourceSet) -> None:
        for ref in resources.refs():
            self.wait(ref)
