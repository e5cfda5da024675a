"""Data models for node labels, taints and the derived migration state."""

from enum import Enum

from kubernetes import client
from pydantic import BaseModel, field_validator


class NodeTaint(BaseModel):
    """Kubernetes node taint configuration."""

    key: str
    value: str
    effect: str  # NoSchedule, PreferNoSchedule, NoExecute

    @field_validator("effect")
    @classmethod
    def validate_effect(cls, v: str) -> str:
        """Validate taint effect is one of the allowed values."""
        allowed = ["NoSchedule", "PreferNoSchedule", "NoExecute"]
        if v not in allowed:
            raise ValueError(f"effect must be one of {allowed}, got {v}")
        return v

    def to_kubernetes(self) -> client.V1Taint:
        return client.V1Taint(key=self.key, value=self.value, effect=self.effect)

    def __str__(self) -> str:
        return f"{self.key}={self.value}:{self.effect}"


class NodeState(str, Enum):
    """Migration position of a node, derived from its labels."""

    UNPREPARED = "unprepared"
    OLD_PLUGIN = "old-plugin"
    DUAL_PLUGIN = "dual-plugin"
    PRIORITY_FLIPPED = "priority-flipped"
    CUTOVER = "cutover"
    MIGRATED = "migrated"
    INCONSISTENT = "inconsistent"


class NodeLabels(BaseModel):
    """Label keys that encode migration progress on each node.

    Every label is set to ``value`` when present. Exactly one of the plugin
    labels (old-plugin-only, dual-plugin, new-plugin/migrated) may be present
    on a prepared node; ``priority_new`` only ever accompanies the dual label.

    All transforms are pure: they take a label mapping and return a new one,
    leaving unrelated labels untouched.
    """

    model_config = {"extra": "forbid"}

    old_plugin: str | None = None
    dual_plugin: str = "node-role.kubernetes.io/canal-cilium"
    new_plugin: str = "node-role.kubernetes.io/cilium"
    rolled: str = "node-role.kubernetes.io/rolled"
    priority_old: str = "node-role.kubernetes.io/cni-priority-canal"
    priority_new: str = "node-role.kubernetes.io/cni-priority-cilium"
    migrated: str = "node-role.kubernetes.io/migrated"
    value: str = "true"

    def has(self, labels: dict[str, str] | None, key: str | None) -> bool:
        if not labels or not key:
            return False
        return labels.get(key) == self.value

    def state(self, labels: dict[str, str] | None) -> NodeState:
        old = self.has(labels, self.old_plugin)
        dual = self.has(labels, self.dual_plugin)
        new = self.has(labels, self.new_plugin) or self.has(labels, self.migrated)

        present = sum([old, dual, new])
        if present == 0:
            return NodeState.UNPREPARED
        if present > 1:
            return NodeState.INCONSISTENT

        if old:
            return NodeState.OLD_PLUGIN
        if dual:
            if self.has(labels, self.priority_new):
                return NodeState.PRIORITY_FLIPPED
            return NodeState.DUAL_PLUGIN
        if self.has(labels, self.migrated) and not self.has(labels, self.priority_new):
            return NodeState.MIGRATED
        return NodeState.CUTOVER

    def is_prepared(self, labels: dict[str, str] | None) -> bool:
        return self.state(labels) in (
            NodeState.DUAL_PLUGIN,
            NodeState.PRIORITY_FLIPPED,
            NodeState.CUTOVER,
            NodeState.MIGRATED,
        )

    def is_rolled(self, labels: dict[str, str] | None) -> bool:
        return self.has(labels, self.rolled)

    def is_priority_flipped(self, labels: dict[str, str] | None) -> bool:
        return self.has(labels, self.priority_new) or self.has(labels, self.migrated)

    def is_migrated(self, labels: dict[str, str] | None) -> bool:
        return self.state(labels) == NodeState.MIGRATED

    def _apply(
        self, labels: dict[str, str] | None, set_keys: list[str], remove_keys: list[str | None]
    ) -> dict[str, str]:
        result = dict(labels or {})
        for key in remove_keys:
            if key:
                result.pop(key, None)
        for key in set_keys:
            result[key] = self.value
        return result

    def prepared(self, labels: dict[str, str] | None) -> dict[str, str]:
        """Dual-plugin label only, replacing any old-plugin or new-plugin label."""
        return self._apply(labels, [self.dual_plugin], [self.old_plugin, self.new_plugin])

    def rolled_labels(self, labels: dict[str, str] | None) -> dict[str, str]:
        return self._apply(labels, [self.rolled], [])

    def flipped(self, labels: dict[str, str] | None) -> dict[str, str]:
        return self._apply(labels, [self.priority_new], [self.priority_old])

    def cutover(self, labels: dict[str, str] | None) -> dict[str, str]:
        return self._apply(labels, [self.new_plugin], [self.dual_plugin])

    def migrated_labels(self, labels: dict[str, str] | None) -> dict[str, str]:
        return self._apply(labels, [self.migrated], [self.dual_plugin, self.priority_new])

    def cutover_taint(self) -> NodeTaint:
        """NoExecute taint that evicts anything left on a node being migrated."""
        return NodeTaint(key=self.new_plugin, value=self.value, effect="NoExecute")
