"""Thin wrapper over the Kubernetes API used by every migration step.

All cluster reads and writes go through :class:`ClusterClient` so that the
rest of the package deals in plain kubernetes model objects and migration
exceptions rather than ``ApiException``. Tests substitute an in-memory fake
with the same methods.
"""

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from cni_migration.exceptions import ConflictError, KubernetesError
from cni_migration.logging_config import get_logger
from cni_migration.models.workload import WorkloadKind, WorkloadRef

logger = get_logger(__name__)

_WORKLOAD_METHODS = {
    WorkloadKind.DAEMONSET: "daemon_set",
    WorkloadKind.DEPLOYMENT: "deployment",
    WorkloadKind.STATEFULSET: "stateful_set",
}


def _api_error(action: str, e: ApiException) -> KubernetesError:
    details = f"HTTP {e.status}: {e.reason}"
    if e.status == 409:
        return ConflictError(f"Conflict while trying to {action}", details, status=e.status)
    return KubernetesError(f"Failed to {action}", details, status=e.status)


def load_client(kubeconfig: str | None = None, context: str | None = None) -> "ClusterClient":
    """Build a client from a kubeconfig file, falling back to in-cluster config.

    Raises:
        KubernetesError: If no usable configuration is found
    """
    try:
        config.load_kube_config(config_file=kubeconfig, context=context)
        logger.debug(f"Loaded kubeconfig (file={kubeconfig or 'default'}, context={context})")
    except config.ConfigException as e:
        if kubeconfig or context:
            raise KubernetesError("Failed to load kubeconfig", str(e))
        try:
            config.load_incluster_config()
            logger.debug("Loaded in-cluster configuration")
        except config.ConfigException:
            raise KubernetesError(
                "Failed to load kubeconfig",
                f"{e}\n\nMake sure KUBECONFIG points at the cluster to migrate, "
                "or pass --kubeconfig",
            )

    return ClusterClient(client.ApiClient())


class ClusterClient:
    """Typed get/list/update/delete for the objects the migration touches."""

    def __init__(self, api_client: client.ApiClient):
        self.core = client.CoreV1Api(api_client)
        self.apps = client.AppsV1Api(api_client)
        self.custom = client.CustomObjectsApi(api_client)

    # Nodes

    def list_nodes(self) -> list[client.V1Node]:
        try:
            return self.core.list_node().items
        except ApiException as e:
            raise _api_error("list nodes", e)

    def get_node(self, name: str) -> client.V1Node:
        try:
            return self.core.read_node(name)
        except ApiException as e:
            raise _api_error(f"get node {name}", e)

    def replace_node(self, node: client.V1Node) -> client.V1Node:
        """Write back a node read earlier; fails with ConflictError if it changed since."""
        name = node.metadata.name
        logger.debug(f"Updating node {name}")
        try:
            return self.core.replace_node(name, node)
        except ApiException as e:
            raise _api_error(f"update node {name}", e)

    # Namespaces and pods

    def list_namespaces(self) -> list[str]:
        try:
            return [ns.metadata.name for ns in self.core.list_namespace().items]
        except ApiException as e:
            raise _api_error("list namespaces", e)

    def list_pods(self, namespace: str, label_selector: str | None = None) -> list[client.V1Pod]:
        try:
            kwargs = {"label_selector": label_selector} if label_selector else {}
            return self.core.list_namespaced_pod(namespace, **kwargs).items
        except ApiException as e:
            raise _api_error(f"list pods in {namespace}", e)

    def get_pod(self, namespace: str, name: str) -> client.V1Pod | None:
        try:
            return self.core.read_namespaced_pod(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise _api_error(f"get pod {namespace}/{name}", e)

    def delete_pod(self, namespace: str, name: str) -> None:
        logger.debug(f"Deleting pod {namespace}/{name}")
        try:
            self.core.delete_namespaced_pod(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return
            raise _api_error(f"delete pod {namespace}/{name}", e)

    # Workloads

    def _apps_call(self, verb: str, kind: WorkloadKind):
        return getattr(self.apps, f"{verb}_{_WORKLOAD_METHODS[kind]}")

    def get_workload(self, ref: WorkloadRef):
        """Return the workload object, or None if it does not exist."""
        try:
            return self._apps_call("read_namespaced", ref.kind)(ref.name, ref.namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise _api_error(f"get {ref}", e)

    def list_workloads(self, kind: WorkloadKind, namespace: str) -> list:
        try:
            return self._apps_call("list_namespaced", kind)(namespace).items
        except ApiException as e:
            raise _api_error(f"list {kind.value}s in {namespace}", e)

    def replace_workload(self, kind: WorkloadKind, obj) -> None:
        ref = WorkloadRef(kind=kind, namespace=obj.metadata.namespace, name=obj.metadata.name)
        logger.debug(f"Updating {ref}")
        try:
            self._apps_call("replace_namespaced", kind)(ref.name, ref.namespace, obj)
        except ApiException as e:
            raise _api_error(f"update {ref}", e)

    def delete_workload(self, ref: WorkloadRef) -> bool:
        """Delete a workload. Returns False if it was already gone."""
        logger.debug(f"Deleting {ref}")
        try:
            self._apps_call("delete_namespaced", ref.kind)(ref.name, ref.namespace)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise _api_error(f"delete {ref}", e)

    # Custom resources

    def list_custom_objects(self, group: str, version: str, plural: str, namespace: str) -> list:
        try:
            result = self.custom.list_namespaced_custom_object(group, version, namespace, plural)
        except ApiException as e:
            if e.status == 404:
                # CRD not installed
                return []
            raise _api_error(f"list {plural} in {namespace}", e)
        return result.get("items", [])

    def delete_custom_object(
        self, group: str, version: str, plural: str, namespace: str, name: str
    ) -> bool:
        logger.debug(f"Deleting {plural} {namespace}/{name}")
        try:
            self.custom.delete_namespaced_custom_object(group, version, namespace, plural, name)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise _api_error(f"delete {plural} {namespace}/{name}", e)
