"""Step 0: make sure the connectivity probe is deployed and healthy."""

from cni_migration.exceptions import ConnectivityError, ReadinessTimeoutError
from cni_migration.models.phase import MigrationPhase
from cni_migration.steps.base import Step


class Preflight(Step):
    phase = MigrationPhase.PREFLIGHT

    def ready(self) -> bool:
        if not self.ctx.inventory.has_all(self.config.preflight_resources):
            return False

        try:
            self.ctx.probe.check()
        except (ConnectivityError, ReadinessTimeoutError) as e:
            self.log.warning(e.format_message())
            return False

        self.log.info("Step 0 ready")
        return True

    def run(self, dryrun: bool) -> None:
        log = self.log.with_dryrun(dryrun)
        log.info("Running preflight checks...")

        for ref in self.ctx.inventory.missing(self.config.preflight_resources):
            if ref == self.config.probe.ref:
                self._install(self.config.probe, dryrun, log)
            else:
                log.warning(f"{ref} is missing and is not managed by this tool")

        if not dryrun:
            self.ctx.probe.check()
