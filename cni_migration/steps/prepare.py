"""Step 1: install the new plugin alongside the old one."""

from cni_migration.config import Component
from cni_migration.models.phase import MigrationPhase
from cni_migration.models.workload import WorkloadRef
from cni_migration.steps.base import Step


class Prepare(Step):
    """Label nodes for dual networking and bring up the new plugin and overlay.

    Once every node has been migrated this phase is superseded: the
    resources it installs may already have been cleaned up, so it reports
    ready and does nothing.
    """

    phase = MigrationPhase.PREPARE

    def _components(self) -> dict[WorkloadRef, Component]:
        components = [self.config.new_plugin, self.config.overlay, self.config.probe]
        return {c.ref: c for c in components}

    def superseded(self) -> bool:
        nodes = self.ctx.store.nodes()
        return bool(nodes) and all(self.labels.is_migrated(n.metadata.labels) for n in nodes)

    def unlabeled_nodes(self) -> list[str]:
        return [
            n.metadata.name
            for n in self.ctx.store.nodes()
            if not self.labels.is_prepared(n.metadata.labels)
        ]

    def old_plugin_patched(self) -> bool:
        ds = self.ctx.client.get_workload(self.config.old_plugin.ref)
        if ds is None:
            self.log.info(f"{self.config.old_plugin.ref} not found, nothing to patch")
            return True
        selector = ds.spec.template.spec.node_selector or {}
        return selector.get(self.labels.dual_plugin) == self.labels.value

    def namespaces_without_attachment(self) -> list[str]:
        na = self.config.network_attachment
        return [
            namespace
            for namespace in self.ctx.client.list_namespaces()
            if not self.ctx.client.list_custom_objects(na.group, na.version, na.plural, namespace)
        ]

    def ready(self) -> bool:
        if self.superseded():
            self.log.info("All nodes migrated, step 1 superseded")
            return True

        if self.unlabeled_nodes():
            return False
        if not self.old_plugin_patched():
            return False
        if not self.ctx.inventory.has_all(self.config.required_resources):
            return False

        if self.config.network_attachment.enabled:
            if self.namespaces_without_attachment():
                return False
            if self.ctx.annotator.pending():
                return False

        self.log.info("Step 1 ready")
        return True

    def run(self, dryrun: bool) -> None:
        log = self.log.with_dryrun(dryrun)
        log.info("Preparing migration...")

        if self.superseded():
            log.info("All nodes migrated, nothing to prepare")
            return

        for name in self.unlabeled_nodes():
            log.info(f"Updating labels on node {name}")
            if not dryrun:
                self.ctx.store.mark_prepared(name)

        if not self.old_plugin_patched():
            log.info(
                f"Patching {self.config.old_plugin.ref} with node selector "
                f"{self.labels.dual_plugin}={self.labels.value}"
            )
            if not dryrun:
                self._patch_old_plugin()

        components = self._components()
        for ref in self.ctx.inventory.missing(self.config.required_resources):
            if ref in components:
                self._install(components[ref], dryrun, log)
            else:
                log.warning(f"{ref} is missing and is not managed by this tool")

        na = self.config.network_attachment
        if na.enabled:
            manifest = self.config.manifest_path(na.manifest)
            for namespace in self.namespaces_without_attachment():
                log.info(f"Creating network attachment definition in namespace {namespace}")
                if not dryrun:
                    self.ctx.nodeops.apply(manifest, namespace)
            self.ctx.annotator.run(dryrun)

        if not dryrun:
            self._wait_watched()
            self.ctx.probe.check()

    def _patch_old_plugin(self) -> None:
        ref = self.config.old_plugin.ref
        ds = self.ctx.client.get_workload(ref)
        pod_spec = ds.spec.template.spec
        pod_spec.node_selector = {
            **(pod_spec.node_selector or {}),
            self.labels.dual_plugin: self.labels.value,
        }
        self.ctx.client.replace_workload(ref.kind, ds)
