"""Ordered execution and gating of migration phases."""

from collections.abc import Iterable

from cni_migration.exceptions import PreconditionNotMetError
from cni_migration.logging_config import get_logger
from cni_migration.models.phase import MigrationPhase
from cni_migration.steps import (
    Cleanup,
    MigrationContext,
    Migrate,
    Preflight,
    Prepare,
    PriorityFlip,
    Roll,
    Step,
)

logger = get_logger(__name__)


def build_steps(ctx: MigrationContext, migrate_nodes: list[str] | None = None) -> list[Step]:
    """Create every phase in execution order.

    Args:
        ctx: Shared collaborators
        migrate_nodes: Restrict the migrate phase to these nodes
    """
    return [
        Preflight(ctx),
        Prepare(ctx),
        Roll(ctx),
        PriorityFlip(ctx),
        Migrate(ctx, migrate_nodes),
        Cleanup(ctx),
    ]


class StepSequencer:
    """Run phases in order, refusing to skip past one that is not ready."""

    def __init__(self, steps: Iterable[Step]):
        self.steps = {step.phase: step for step in steps}
        missing = [p for p in MigrationPhase if p not in self.steps]
        if missing:
            raise ValueError(f"no step registered for: {', '.join(p.slug for p in missing)}")

    def __iter__(self):
        return (self.steps[phase] for phase in MigrationPhase)

    def readiness(self) -> dict[MigrationPhase, bool]:
        return {phase: self.steps[phase].ready() for phase in MigrationPhase}

    def run_all(self, dryrun: bool) -> None:
        """Run every phase in order.

        Raises:
            PreconditionNotMetError: If a phase did not converge after running
        """
        for step in self:
            step.run(dryrun)
            if dryrun:
                continue
            if not step.complete():
                raise PreconditionNotMetError(
                    f"step {step.phase.value} not ready after running",
                    f"{step.phase.tag} did not reach its target state",
                )

    def run_selected(self, phases: Iterable[MigrationPhase], dryrun: bool) -> None:
        """Run the requested phases in order, each only once the one before it is complete.

        An unrequested earlier phase must already be complete. In live mode a
        requested phase must also converge before the next one starts; in dry
        run nothing changed, so requested predecessors are not re-checked.

        Raises:
            PreconditionNotMetError: If a phase is not complete when a later one needs it
        """
        requested = set(phases)
        if not requested:
            logger.info("no steps specified")
            return

        highest = max(requested)
        previous: Step | None = None
        for phase in MigrationPhase:
            if phase > highest:
                break

            step = self.steps[phase]
            if phase not in requested:
                if not step.complete():
                    raise PreconditionNotMetError(
                        f"step {phase.value} not ready",
                        f"Run step {phase.value} ({phase.slug}) first",
                    )
                previous = step
                continue

            if not dryrun and previous is not None and previous.phase in requested:
                if not previous.complete():
                    raise PreconditionNotMetError(
                        f"step {previous.phase.value} not ready",
                        f"Step {previous.phase.value} ({previous.phase.slug}) has not finished "
                        f"on every node, so step {phase.value} cannot start",
                    )

            step.run(dryrun)
            if not dryrun and not step.ready():
                raise PreconditionNotMetError(
                    f"step {phase.value} not ready after running",
                    f"{step.phase.tag} did not reach its target state",
                )
            previous = step
