from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

from .db import log_event
from .definitions import validate_container_name
from .errors import MissingContainerName
from .host_ops import ContainerRuntime, ServiceManager
from .installer import config_anchor, unit_anchor
from .models import unit_name
from .settings import HostLayout


def list_installed(layout: HostLayout) -> list[str]:
    """Containers installed by this tool, i.e. those holding a unit GC root."""
    if not layout.gcroots_dir.is_dir():
        return []
    names = [
        p.name
        for p in layout.gcroots_dir.iterdir()
        if not p.name.endswith(".conf") and not p.name.startswith(".") and p.is_symlink()
    ]
    return sorted(names)


def _remove(path: Path) -> bool:
    if os.path.lexists(path):
        path.unlink()
        return True
    return False


def destroy(
    names: Iterable[str],
    layout: HostLayout,
    services: ServiceManager,
    runtime: ContainerRuntime,
    all_installed: bool = False,
) -> list[str]:
    """Stop containers, drop their installed files and destroy their state.

    Returns the names that were destroyed.
    """
    targets = list_installed(layout) if all_installed else sorted(set(names))
    for n in targets:
        validate_container_name(n)
    if not targets:
        if all_installed:
            return []
        raise MissingContainerName("destroy needs at least one container name or --all")

    units = [unit_name(n) for n in targets]
    stopped = services.stop(units)
    if not stopped.ok:
        log_event("WARN", f"Stopping {', '.join(units)} failed (ignored): {stopped.output}")

    # Keep the container conf until nixos-container destroy has read it.
    for n in targets:
        _remove(layout.unit_dir / unit_name(n))
        _remove(unit_anchor(layout, n))
        _remove(config_anchor(layout, n))
    services.reload()

    for n in targets:
        res = runtime.destroy(n)
        if not res.ok:
            log_event("WARN", f"nixos-container destroy failed (exit code {res.returncode}): {res.output}", container=n)
        # nixos-container removes the conf itself; clean up if it did not.
        _remove(layout.config_dir / f"{n}.conf")
        log_event("INFO", "Destroyed container", container=n)
    return targets
