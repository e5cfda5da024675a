"""Data models for migration state and configuration."""

from cni_migration.models.node import NodeLabels, NodeState, NodeTaint
from cni_migration.models.phase import MigrationPhase
from cni_migration.models.workload import Readiness, ResourceSet, WorkloadKind, WorkloadRef

__all__ = [
    "MigrationPhase",
    "NodeLabels",
    "NodeState",
    "NodeTaint",
    "Readiness",
    "ResourceSet",
    "WorkloadKind",
    "WorkloadRef",
]
