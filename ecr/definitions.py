from __future__ import annotations

import re
from pathlib import Path

from .errors import InvalidContainerName, NoDefinitionsFound
from .models import UNIT_PREFIX, UNIT_SUFFIX, ContainerDefinition


UNITS_SUBDIR = "units"
CONFIGS_SUBDIR = "containers"

CONTAINER_NAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_\-]*$")
UNIT_FILE_RE = re.compile(rf"^{re.escape(UNIT_PREFIX)}(?P<name>.+){re.escape(UNIT_SUFFIX)}$")


def validate_container_name(name: str) -> None:
    if not CONTAINER_NAME_RE.match(name):
        raise InvalidContainerName(
            f"Invalid container name '{name}'. Use letters, digits, '-' or '_', starting with a letter or digit."
        )


def container_names(root: Path) -> list[str]:
    """Names of all containers defined in a built tree, sorted and unique."""
    units_dir = Path(root) / UNITS_SUBDIR
    names: set[str] = set()
    if units_dir.is_dir():
        for entry in units_dir.iterdir():
            m = UNIT_FILE_RE.match(entry.name)
            if m:
                names.add(m.group("name"))
    if not names:
        raise NoDefinitionsFound(f"No container definitions found in {root}")
    for name in names:
        validate_container_name(name)
    return sorted(names)


def load_definitions(root: Path) -> list[ContainerDefinition]:
    root = Path(root)
    return [
        ContainerDefinition(
            name=name,
            unit_path=root / UNITS_SUBDIR / f"{UNIT_PREFIX}{name}{UNIT_SUFFIX}",
            config_path=root / CONFIGS_SUBDIR / f"{name}.conf",
        )
        for name in container_names(root)
    ]
