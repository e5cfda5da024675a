"""Migration configuration loaded from YAML."""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

from cni_migration.exceptions import ConfigurationError
from cni_migration.logging_config import get_logger
from cni_migration.models.node import NodeLabels
from cni_migration.models.workload import ResourceSet, WorkloadKind, WorkloadRef

logger = get_logger(__name__)


class Component(BaseModel):
    """A workload installed from an opaque manifest file."""

    model_config = {"extra": "forbid"}

    namespace: str
    name: str
    kind: WorkloadKind = WorkloadKind.DAEMONSET
    manifest: str | None = None

    @property
    def ref(self) -> WorkloadRef:
        return WorkloadRef(kind=self.kind, namespace=self.namespace, name=self.name)


class ProbeConfig(Component):
    """Connectivity probe agent and the in-pod status check."""

    namespace: str = "knet-stress"
    name: str = "knet-stress"
    manifest: str | None = "knet-stress.yaml"
    selector: str = "app=knet-stress"
    command: list[str] = Field(default_factory=lambda: ["/knet-stress", "-status"])

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("probe command cannot be empty")
        return v


class NetworkAttachmentConfig(BaseModel):
    """Secondary network attachment added to every workload during prepare."""

    model_config = {"extra": "forbid"}

    enabled: bool = False
    annotation_key: str = "k8s.v1.cni.cncf.io/networks"
    annotation_value: str = "cilium-conf"
    manifest: str = "net-attach.yaml"
    group: str = "k8s.cni.cncf.io"
    version: str = "v1"
    plural: str = "network-attachment-definitions"


class TimeoutConfig(BaseModel):
    """Polling intervals and deadlines, in seconds."""

    model_config = {"extra": "forbid"}

    readiness: float = 300
    readiness_interval: float = 2
    connectivity: float = 1000
    connectivity_interval: float = 5
    pod_deletion: float = 300
    pod_deletion_interval: float = 1
    command: float = 900

    @model_validator(mode="after")
    def validate_positive(self) -> "TimeoutConfig":
        for name, value in self.model_dump().items():
            if value < 0:
                raise ValueError(f"timeouts.{name} cannot be negative, got {value}")
        return self


class CleanupConfig(BaseModel):
    model_config = {"extra": "forbid"}

    remove_new_plugin_selector: bool = False


class MigrationConfig(BaseModel):
    """Complete configuration for a migration run."""

    model_config = {"extra": "forbid"}

    labels: NodeLabels = Field(default_factory=NodeLabels)
    resources_directory: Path = Path("./resources")

    old_plugin: Component = Field(
        default_factory=lambda: Component(namespace="kube-system", name="canal")
    )
    new_plugin: Component = Field(
        default_factory=lambda: Component(
            namespace="kube-system", name="cilium", manifest="cilium.yaml"
        )
    )
    overlay: Component = Field(
        default_factory=lambda: Component(
            namespace="kube-system", name="kube-multus-ds-amd64", manifest="multus-daemonset.yaml"
        )
    )
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    network_attachment: NetworkAttachmentConfig = Field(default_factory=NetworkAttachmentConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)

    preflight_resources: ResourceSet = Field(default_factory=ResourceSet)
    required_resources: ResourceSet = Field(default_factory=ResourceSet)
    watched_resources: ResourceSet = Field(default_factory=ResourceSet)
    cleanup_resources: ResourceSet = Field(default_factory=ResourceSet)

    @model_validator(mode="after")
    def default_resource_sets(self) -> "MigrationConfig":
        """Fill resource sets that were not configured from the components."""
        if not any(self.preflight_resources.refs()):
            self.preflight_resources = _resource_set(self.probe)
        if not any(self.required_resources.refs()):
            self.required_resources = _resource_set(self.new_plugin, self.overlay, self.probe)
        if not any(self.watched_resources.refs()):
            self.watched_resources = _resource_set(
                self.old_plugin, self.new_plugin, self.overlay, self.probe
            )
        if not any(self.cleanup_resources.refs()):
            self.cleanup_resources = _resource_set(self.old_plugin, self.overlay)
        return self

    def manifest_path(self, manifest: str) -> Path:
        return self.resources_directory / manifest

    @classmethod
    def load(cls, path: str | Path) -> "MigrationConfig":
        """Load configuration from a YAML file.

        Raises:
            ConfigurationError: If the file cannot be read or is invalid
        """
        path = Path(path)
        logger.debug(f"Loading configuration from {path}")

        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                "Create one with 'cni-migration config-init' or pass --config",
            )

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to read configuration file {path}", str(e))

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file {path} must contain a mapping at the top level"
            )

        try:
            config = cls(**data)
        except ValidationError as e:
            problems = "\n".join(
                f"  - {'.'.join(str(x) for x in error['loc'])}: {error['msg']}"
                for error in e.errors()
            )
            raise ConfigurationError(f"Invalid configuration in {path}", problems)

        # Relative manifest directories resolve against the config file
        if not config.resources_directory.is_absolute():
            config.resources_directory = path.parent / config.resources_directory

        return config


def _resource_set(*components: Component) -> ResourceSet:
    groups: dict[WorkloadKind, dict[str, list[str]]] = {kind: {} for kind in WorkloadKind}
    for component in components:
        names = groups[component.kind].setdefault(component.namespace, [])
        if component.name not in names:
            names.append(component.name)
    return ResourceSet(
        daemonsets=groups[WorkloadKind.DAEMONSET],
        deployments=groups[WorkloadKind.DEPLOYMENT],
        statefulsets=groups[WorkloadKind.STATEFULSET],
    )


_SECTION_COMMENTS = {
    "labels": "Node label keys that record migration progress",
    "resources_directory": "Manifests are resolved relative to this directory",
    "old_plugin": "Network plugin being replaced",
    "new_plugin": "Network plugin being installed",
    "overlay": "Meta-plugin that runs both plugins side by side",
    "probe": "Connectivity probe agent, run in every pod with 'command'",
    "network_attachment": "Secondary network attachment added to workloads during prepare",
    "timeouts": "Deadlines and polling intervals in seconds",
    "cleanup": "Extra cleanup once every node has been migrated",
    "preflight_resources": "Workloads checked before the migration starts",
    "required_resources": "Workloads that must exist once prepared",
    "watched_resources": "Workloads waited on after every node operation",
    "cleanup_resources": "Workloads deleted by the cleanup step",
}


def _commented(value):
    if isinstance(value, dict):
        mapping = CommentedMap()
        for key, item in value.items():
            mapping[key] = _commented(item)
        return mapping
    if isinstance(value, list):
        return [_commented(item) for item in value]
    return value


def write_default_config(path: str | Path, overwrite: bool = False) -> Path:
    """Write the default configuration, with a comment above each section.

    Raises:
        ConfigurationError: If the file exists and ``overwrite`` is False, or
            it cannot be written
    """
    path = Path(path)
    if path.exists() and not overwrite:
        raise ConfigurationError(
            f"Configuration file already exists: {path}", "Pass --force to overwrite it"
        )

    data = _commented(MigrationConfig().model_dump(mode="json"))
    for index, key in enumerate(data):
        comment = _SECTION_COMMENTS.get(key)
        if comment:
            before = comment if index == 0 else f"\n{comment}"
            data.yaml_set_comment_before_after_key(key, before=before)

    writer = YAML()
    writer.default_flow_style = False
    writer.indent(mapping=2, sequence=2, offset=0)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            writer.dump(data, f)
    except OSError as e:
        raise ConfigurationError(f"Failed to write configuration file {path}", str(e))

    logger.info(f"Wrote default configuration to {path}")
    return path
