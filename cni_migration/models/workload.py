"""Data models for workloads and named sets of workloads."""

from collections.abc import Iterator
from enum import Enum

from pydantic import BaseModel, Field


class WorkloadKind(str, Enum):
    """Workload kinds the migration tracks."""

    DAEMONSET = "DaemonSet"
    DEPLOYMENT = "Deployment"
    STATEFULSET = "StatefulSet"

    @property
    def resource(self) -> str:
        """Lower-case name understood by kubectl."""
        return self.value.lower()


class WorkloadRef(BaseModel):
    """Identity of a single workload."""

    model_config = {"frozen": True}

    kind: WorkloadKind
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind.value} {self.namespace}/{self.name}"


class Readiness(BaseModel):
    """Ready and desired pod counts of a workload."""

    ready: int
    desired: int

    @property
    def complete(self) -> bool:
        return self.ready == self.desired

    def __str__(self) -> str:
        return f"{self.ready}/{self.desired}"

    @classmethod
    def from_workload(cls, kind: WorkloadKind, obj) -> "Readiness":
        """Read counts from a kubernetes workload object."""
        status = obj.status
        if status is None:
            return cls(ready=0, desired=0)

        if kind == WorkloadKind.DAEMONSET:
            return cls(
                ready=status.number_ready or 0,
                desired=status.desired_number_scheduled or 0,
            )

        return cls(ready=status.ready_replicas or 0, desired=status.replicas or 0)


class ResourceSet(BaseModel):
    """Workload names grouped by kind and namespace."""

    model_config = {"extra": "forbid"}

    daemonsets: dict[str, list[str]] = Field(default_factory=dict)
    deployments: dict[str, list[str]] = Field(default_factory=dict)
    statefulsets: dict[str, list[str]] = Field(default_factory=dict)

    def refs(self) -> Iterator[WorkloadRef]:
        groups = (
            (WorkloadKind.DAEMONSET, self.daemonsets),
            (WorkloadKind.DEPLOYMENT, self.deployments),
            (WorkloadKind.STATEFULSET, self.statefulsets),
        )
        for kind, by_namespace in groups:
            for namespace, names in by_namespace.items():
                for name in names:
                    yield WorkloadRef(kind=kind, namespace=namespace, name=name)
