"""Migration phases, in execution order."""

from cni_migration.steps.base import MigrationContext, NodeStep, Step
from cni_migration.steps.cleanup import Cleanup
from cni_migration.steps.migrate import Migrate
from cni_migration.steps.prepare import Prepare
from cni_migration.steps.preflight import Preflight
from cni_migration.steps.priority import PriorityFlip
from cni_migration.steps.roll import Roll

__all__ = [
    "Cleanup",
    "MigrationContext",
    "Migrate",
    "NodeStep",
    "Preflight",
    "Prepare",
    "PriorityFlip",
    "Roll",
    "Step",
]
