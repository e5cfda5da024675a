"""Node operations executed through kubectl."""

import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from cni_migration.exceptions import NodeOperationError
from cni_migration.logging_config import get_logger
from cni_migration.models.workload import WorkloadRef

logger = get_logger(__name__)


class NodeOperations(ABC):
    """Operations that shell out to an external tool instead of the API."""

    @abstractmethod
    def cordon(self, node: str) -> None: ...

    @abstractmethod
    def uncordon(self, node: str) -> None: ...

    @abstractmethod
    def drain(self, node: str, delete_local_data: bool = False) -> None:
        """Cordon the node and evict its pods, leaving DaemonSet pods in place."""

    @abstractmethod
    def apply(self, manifest: Path, namespace: str) -> None: ...

    @abstractmethod
    def delete(self, manifest: Path, namespace: str) -> None: ...

    @abstractmethod
    def rollout_restart(self, ref: WorkloadRef) -> None: ...

    @abstractmethod
    def exec(self, namespace: str, pod: str, command: list[str]) -> bool:
        """Run a command inside a pod. Returns True if it exited zero."""


class KubectlNodeOperations(NodeOperations):
    """NodeOperations backed by the kubectl binary."""

    def __init__(
        self,
        kubectl: str = "kubectl",
        kubeconfig: str | None = None,
        context: str | None = None,
        timeout: float = 900,
    ):
        self.base = [kubectl]
        if kubeconfig:
            self.base += ["--kubeconfig", kubeconfig]
        if context:
            self.base += ["--context", context]
        self.timeout = timeout

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        command = self.base + list(args)
        logger.debug(f"Running: {' '.join(command)}")

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.error(f"Command timed out after {self.timeout:g} seconds: {' '.join(command)}")
            raise NodeOperationError(command, None, f"timed out after {self.timeout:g}s")
        except FileNotFoundError:
            logger.error(f"{self.base[0]} binary not found in PATH")
            raise NodeOperationError(
                command,
                None,
                f"'{self.base[0]}' is not installed or not in PATH",
            )

        if result.stdout:
            logger.debug(result.stdout.rstrip())
        return result

    def _check(self, *args: str) -> None:
        result = self._run(*args)
        if result.returncode != 0:
            logger.error(f"Command failed with return code {result.returncode}: {result.stderr}")
            raise NodeOperationError(self.base + list(args), result.returncode, result.stderr)

    def cordon(self, node: str) -> None:
        self._check("cordon", node)

    def uncordon(self, node: str) -> None:
        self._check("uncordon", node)

    def drain(self, node: str, delete_local_data: bool = False) -> None:
        args = ["drain", "--ignore-daemonsets"]
        if delete_local_data:
            args.append("--delete-emptydir-data")
        args.append(node)
        self._check(*args)

    def apply(self, manifest: Path, namespace: str) -> None:
        self._check("apply", "--namespace", namespace, "-f", str(manifest))

    def delete(self, manifest: Path, namespace: str) -> None:
        self._check("delete", "--ignore-not-found", "--namespace", namespace, "-f", str(manifest))

    def rollout_restart(self, ref: WorkloadRef) -> None:
        self._check("rollout", "restart", ref.kind.resource, "--namespace", ref.namespace, ref.name)

    def exec(self, namespace: str, pod: str, command: list[str]) -> bool:
        result = self._run("exec", "--namespace", namespace, pod, "--", *command)
        if result.returncode != 0:
            logger.warning(
                f"Status check in pod {namespace}/{pod} failed "
                f"(exit {result.returncode}): {result.stderr.strip()}"
            )
            return False
        return True
