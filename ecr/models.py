from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


UNIT_PREFIX = "container@"
UNIT_SUFFIX = ".service"


def unit_name(name: str) -> str:
    return f"{UNIT_PREFIX}{name}{UNIT_SUFFIX}"


class ChangeClassification(str, Enum):
    UNCHANGED = "unchanged"
    # Only the system closure (SYSTEM_PATH) moved; user-visible settings are equal.
    CONFIG_ONLY_CHANGED = "config-only-changed"
    FULLY_CHANGED = "fully-changed"


class RunStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class ContainerDefinition:
    name: str
    unit_path: Path
    config_path: Path

    @property
    def unit(self) -> str:
        return unit_name(self.name)


@dataclass(frozen=True)
class InstalledContainer:
    name: str
    unit_link: Path
    config_link: Path
    unit_anchor: Path
    config_anchor: Path


@dataclass(frozen=True)
class Policy:
    start: bool = False
    update_changed: bool = False
    # Forced restart: every running changed container is restarted, none is live-updated.
    restart_changed: bool = False

    def any_requested(self) -> bool:
        return self.start or self.update_changed or self.restart_changed


@dataclass
class Comparison:
    classifications: dict[str, ChangeClassification] = field(default_factory=dict)

    @property
    def changed(self) -> set[str]:
        return {n for n, c in self.classifications.items() if c is not ChangeClassification.UNCHANGED}

    @property
    def config_only(self) -> set[str]:
        return {n for n, c in self.classifications.items() if c is ChangeClassification.CONFIG_ONLY_CHANGED}


@dataclass
class ReconciliationPlan:
    skip: set[str] = field(default_factory=set)
    start: set[str] = field(default_factory=set)
    update: set[str] = field(default_factory=set)
    restart: set[str] = field(default_factory=set)

    def buckets(self) -> dict[str, set[str]]:
        return {"skip": self.skip, "start": self.start, "update": self.update, "restart": self.restart}


@dataclass
class InstallResult:
    installed: list[InstalledContainer] = field(default_factory=list)
    reload_required: bool = False


@dataclass
class PassResult:
    comparison: Comparison
    install: InstallResult
    plan: ReconciliationPlan
    status: dict[str, RunStatus] = field(default_factory=dict)
