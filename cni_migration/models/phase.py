"""Ordered migration phases."""

from enum import IntEnum


class MigrationPhase(IntEnum):
    PREFLIGHT = 0
    PREPARE = 1
    ROLL = 2
    PRIORITY_FLIP = 3
    MIGRATE = 4
    CLEANUP = 5

    @property
    def slug(self) -> str:
        return _SLUGS[self]

    @property
    def tag(self) -> str:
        """Log tag such as ``2-roll``."""
        return f"{self.value}-{self.slug}"

    @classmethod
    def parse(cls, value: str) -> "MigrationPhase":
        """Parse a phase given by number or by name."""
        text = value.strip().lower()
        if text.isdigit():
            try:
                return cls(int(text))
            except ValueError:
                pass
        for phase, slug in _SLUGS.items():
            if text in (slug, phase.name.lower(), phase.tag):
                return phase
        valid = ", ".join(f"{p.value}|{p.slug}" for p in cls)
        raise ValueError(f"unknown step '{value}', expected one of: {valid}")


_SLUGS = {
    MigrationPhase.PREFLIGHT: "preflight",
    MigrationPhase.PREPARE: "prepare",
    MigrationPhase.ROLL: "roll",
    MigrationPhase.PRIORITY_FLIP: "priority",
    MigrationPhase.MIGRATE: "migrate",
    MigrationPhase.CLEANUP: "cleanup",
}
