"""Cluster connectivity checks through the probe agent DaemonSet."""

import threading

from cni_migration.config import ProbeConfig
from cni_migration.exceptions import ConnectivityError
from cni_migration.kube import ClusterClient
from cni_migration.logging_config import get_logger
from cni_migration.nodeops import NodeOperations
from cni_migration.polling import poll_until
from cni_migration.waiter import ReadinessWaiter

logger = get_logger(__name__)


class ConnectivityProbe:
    """Ask every probe agent pod whether it can reach all of its peers."""

    def __init__(
        self,
        client: ClusterClient,
        nodeops: NodeOperations,
        waiter: ReadinessWaiter,
        probe: ProbeConfig,
        timeout: float = 1000,
        interval: float = 5,
        cancel: threading.Event | None = None,
    ):
        self.client = client
        self.nodeops = nodeops
        self.waiter = waiter
        self.probe = probe
        self.timeout = timeout
        self.interval = interval
        self.cancel = cancel

    def healthy(self) -> tuple[bool, list[str]]:
        """Run the status check once in every probe pod.

        Returns:
            Whether all pods passed, and the names of the pods that did not
        """
        pods = self.client.list_pods(self.probe.namespace, self.probe.selector)
        if not pods:
            logger.warning(
                f"No probe pods found in {self.probe.namespace} matching {self.probe.selector}"
            )
            return False, []

        failed = []
        for pod in pods:
            if not self.nodeops.exec(self.probe.namespace, pod.metadata.name, self.probe.command):
                failed.append(pod.metadata.name)

        return not failed, failed

    def check(self) -> None:
        """Block until every probe pod reports healthy.

        Raises:
            ConnectivityError: If connectivity is not confirmed before the deadline
        """
        logger.info("Checking connectivity...")
        self.waiter.wait(self.probe.ref)

        ok, failed = poll_until(self.healthy, self.timeout, self.interval, self.cancel)
        if not ok:
            failing = ", ".join(failed) if failed else "no probe pods running"
            raise ConnectivityError(
                f"Connectivity check failed after {self.timeout:g}s",
                f"Unhealthy: {failing}. Nodes being migrated are left cordoned; "
                "investigate before re-running.",
            )

        logger.info("Connectivity check passed")

    def restart(self) -> None:
        """Restart the probe agent so it re-evaluates node networking."""
        logger.info(f"Restarting {self.probe.ref}")
        self.nodeops.rollout_restart(self.probe.ref)
        self.waiter.wait(self.probe.ref)
