"""Step 5: remove the old plugin and everything only the migration needed."""

from cni_migration.logging_config import StepLogger
from cni_migration.models.phase import MigrationPhase
from cni_migration.steps.base import Step


class Cleanup(Step):
    phase = MigrationPhase.CLEANUP

    def _new_plugin_selected(self) -> bool:
        ds = self.ctx.client.get_workload(self.config.new_plugin.ref)
        if ds is None:
            return False
        selector = ds.spec.template.spec.node_selector or {}
        return self.labels.new_plugin in selector

    def ready(self) -> bool:
        if not self.ctx.inventory.has_none(self.config.cleanup_resources):
            return False
        if self.config.cleanup.remove_new_plugin_selector and self._new_plugin_selected():
            return False

        self.log.info("Step 5 ready")
        return True

    def run(self, dryrun: bool) -> None:
        log = self.log.with_dryrun(dryrun)
        log.info("Cleaning up...")

        components = (self.config.old_plugin, self.config.overlay)
        for component in components:
            if self.ctx.client.get_workload(component.ref) is None:
                log.debug(f"{component.ref} already removed")
                continue
            if component.manifest is not None:
                path = self.config.manifest_path(component.manifest)
                log.info(f"Deleting {component.ref} resources from {path}")
                if not dryrun:
                    self.ctx.nodeops.delete(path, component.namespace)

            log.info(f"Deleting {component.ref}")
            if not dryrun:
                self.ctx.client.delete_workload(component.ref)

        if dryrun:
            handled = {c.ref for c in components}
            for ref in self.ctx.inventory.present(self.config.cleanup_resources):
                if ref not in handled:
                    log.info(f"Deleting {ref}")
        else:
            self.ctx.inventory.delete_all(self.config.cleanup_resources)

        self._delete_network_attachments(dryrun, log)

        if self.config.cleanup.remove_new_plugin_selector and self._new_plugin_selected():
            log.info(
                f"Removing {self.labels.new_plugin} node selector from {self.config.new_plugin.ref}"
            )
            if not dryrun:
                self._strip_new_plugin_selector()

    def _delete_network_attachments(self, dryrun: bool, log: StepLogger) -> None:
        na = self.config.network_attachment
        for namespace in self.ctx.client.list_namespaces():
            for obj in self.ctx.client.list_custom_objects(na.group, na.version, na.plural, namespace):
                name = obj["metadata"]["name"]
                log.info(f"Deleting network attachment definition {namespace}/{name}")
                if not dryrun:
                    self.ctx.client.delete_custom_object(
                        na.group, na.version, na.plural, namespace, name
                    )

    def _strip_new_plugin_selector(self) -> None:
        ref = self.config.new_plugin.ref
        ds = self.ctx.client.get_workload(ref)
        pod_spec = ds.spec.template.spec
        selector = dict(pod_spec.node_selector or {})
        selector.pop(self.labels.new_plugin, None)
        pod_spec.node_selector = selector or None
        self.ctx.client.replace_workload(ref.kind, ds)
