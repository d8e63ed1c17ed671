from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

from .models import ChangeClassification, Comparison, ContainerDefinition
from .settings import HostLayout


def parse_config(text: str) -> dict[str, str]:
    """Parse a nixos-container style ``KEY=value`` config."""
    out: dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        out[key.strip()] = value.strip()
    return out


def read_config(path: Path) -> dict[str, str]:
    return parse_config(Path(path).read_text(encoding="utf-8"))


def redact(config: dict[str, str], fields: Iterable[str]) -> dict[str, str]:
    drop = set(fields)
    return {k: v for k, v in config.items() if k not in drop}


def installed_unit_link(layout: HostLayout, definition: ContainerDefinition) -> Path:
    return layout.unit_dir / definition.unit


def installed_config_link(layout: HostLayout, name: str) -> Path:
    return layout.config_dir / f"{name}.conf"


def _canonical(path: Path) -> str | None:
    if not os.path.lexists(path):
        return None
    return os.path.realpath(path)


def classify_one(definition: ContainerDefinition, layout: HostLayout, redact_fields: Iterable[str]) -> ChangeClassification:
    desired_unit = _canonical(definition.unit_path)
    desired_config = _canonical(definition.config_path)
    current_unit = _canonical(installed_unit_link(layout, definition))
    current_config = _canonical(installed_config_link(layout, definition.name))

    if current_unit is None or current_unit != desired_unit:
        return ChangeClassification.FULLY_CHANGED
    if current_config is not None and current_config == desired_config:
        return ChangeClassification.UNCHANGED

    # Unit is identical; decide whether the config moved only in generated fields.
    if current_config is None or desired_config is None:
        return ChangeClassification.FULLY_CHANGED
    if not (os.path.isfile(current_config) and os.path.isfile(desired_config)):
        return ChangeClassification.FULLY_CHANGED
    fields = list(redact_fields)
    if redact(read_config(Path(current_config)), fields) == redact(read_config(Path(desired_config)), fields):
        return ChangeClassification.CONFIG_ONLY_CHANGED
    return ChangeClassification.FULLY_CHANGED


def classify(
    definitions: Iterable[ContainerDefinition],
    layout: HostLayout,
    redact_fields: Iterable[str] = ("SYSTEM_PATH",),
) -> Comparison:
    """Classify every desired container against what is installed.

    Read-only with respect to both the desired tree and the host.
    """
    fields = tuple(redact_fields)
    comparison = Comparison()
    for d in definitions:
        comparison.classifications[d.name] = classify_one(d, layout, fields)
    return comparison
