from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

from .comparator import installed_config_link, installed_unit_link
from .db import log_event
from .errors import MissingExpectedArtifact
from .models import ChangeClassification, Comparison, ContainerDefinition, InstalledContainer, InstallResult
from .settings import HostLayout


def unit_anchor(layout: HostLayout, name: str) -> Path:
    return layout.gcroots_dir / name


def config_anchor(layout: HostLayout, name: str) -> Path:
    return layout.gcroots_dir / f"{name}.conf"


def installed_container(layout: HostLayout, definition: ContainerDefinition) -> InstalledContainer:
    return InstalledContainer(
        name=definition.name,
        unit_link=installed_unit_link(layout, definition),
        config_link=installed_config_link(layout, definition.name),
        unit_anchor=unit_anchor(layout, definition.name),
        config_anchor=config_anchor(layout, definition.name),
    )


def replace_symlink(link: Path, target: str | os.PathLike[str]) -> bool:
    """Point ``link`` at ``target`` atomically.

    Returns True if the link was created or retargeted.
    """
    link = Path(link)
    target = os.fspath(target)
    if link.is_symlink() and os.readlink(link) == target:
        return False
    link.parent.mkdir(parents=True, exist_ok=True)
    tmp = link.with_name(f".{link.name}.tmp-{os.getpid()}")
    if os.path.lexists(tmp):
        tmp.unlink()
    os.symlink(target, tmp)
    os.replace(tmp, link)
    return True


def install_one(layout: HostLayout, definition: ContainerDefinition) -> tuple[InstalledContainer, bool]:
    """Install one container. Returns (installed, unit_changed)."""
    if not definition.config_path.is_file():
        raise MissingExpectedArtifact(
            f"Container '{definition.name}' has no config at {definition.config_path}; the build output is malformed."
        )
    inst = installed_container(layout, definition)
    unit_changed = replace_symlink(inst.unit_link, os.path.realpath(definition.unit_path))
    replace_symlink(inst.config_link, os.path.realpath(definition.config_path))
    # Anchors last: they must only exist for completed installs.
    replace_symlink(inst.unit_anchor, inst.unit_link)
    replace_symlink(inst.config_anchor, inst.config_link)
    return inst, unit_changed


def install(definitions: Iterable[ContainerDefinition], comparison: Comparison, layout: HostLayout) -> InstallResult:
    """Install every container that is not classified as unchanged.

    Aborts on the first malformed definition; containers installed before it
    stay installed.
    """
    result = InstallResult()
    for d in definitions:
        if comparison.classifications.get(d.name) is ChangeClassification.UNCHANGED:
            continue
        inst, unit_changed = install_one(layout, d)
        result.installed.append(inst)
        result.reload_required = result.reload_required or unit_changed
        log_event("INFO", "Installed container definition", container=d.name)
    return result
