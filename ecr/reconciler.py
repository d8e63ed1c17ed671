from __future__ import annotations

import textwrap
from pathlib import Path

from . import comparator, installer
from .db import log_event
from .definitions import load_definitions
from .host_ops import ContainerRuntime, ServiceManager
from .models import (
    ChangeClassification,
    Comparison,
    PassResult,
    Policy,
    ReconciliationPlan,
    RunStatus,
    unit_name,
)
from .settings import HostLayout
from .terminator import Terminator


SYSTEM_PATH_KEY = "SYSTEM_PATH"


def plan_actions(
    desired: list[str],
    comparison: Comparison,
    status: dict[str, RunStatus],
    policy: Policy,
) -> ReconciliationPlan:
    """Partition desired containers into skip/start/update/restart.

    Every desired name lands in exactly one bucket. Stopped containers are
    only ever started: their unit already reflects any change.
    """
    plan = ReconciliationPlan()
    names = set(desired)
    if policy.any_requested():
        active = {n for n in names if status.get(n) is RunStatus.ACTIVE}
        if policy.start:
            plan.start = names - active
        running_changed = active & comparison.changed
        if policy.restart_changed:
            plan.restart = set(running_changed)
        elif policy.update_changed:
            plan.update = running_changed & comparison.config_only
            plan.restart = running_changed - plan.update
    plan.skip = names - plan.start - plan.update - plan.restart
    return plan


class Reconciler:
    """Converges installed/running containers towards a built definition tree."""

    def __init__(
        self,
        layout: HostLayout,
        services: ServiceManager,
        runtime: ContainerRuntime,
        terminator: Terminator,
        redact_fields: tuple[str, ...] = (SYSTEM_PATH_KEY,),
    ) -> None:
        self.layout = layout
        self.services = services
        self.runtime = runtime
        self.terminator = terminator
        self.redact_fields = tuple(redact_fields)

    def compare(self, root: Path) -> Comparison:
        return comparator.classify(load_definitions(root), self.layout, self.redact_fields)

    def reconcile(self, root: Path, policy: Policy) -> PassResult:
        definitions = load_definitions(root)
        names = [d.name for d in definitions]
        comparison = comparator.classify(definitions, self.layout, self.redact_fields)
        for name, c in comparison.classifications.items():
            if c is not ChangeClassification.UNCHANGED:
                log_event("INFO", f"Classified as {c.value}", container=name)

        # 1. Install
        install = installer.install(definitions, comparison, self.layout)
        if install.reload_required:
            # Fatal on failure: later start/stop would act on stale units.
            self.services.reload()

        result = PassResult(comparison=comparison, install=install, plan=ReconciliationPlan(skip=set(names)))
        if not policy.any_requested():
            return result

        # 2. Status
        result.status = self.run_status(names)

        # 3. Partition
        plan = plan_actions(names, comparison, result.status, policy)
        result.plan = plan

        # 4. Apply: start, then update, then restart
        if plan.start:
            self.services.start([unit_name(n) for n in sorted(plan.start)])
            for n in sorted(plan.start):
                log_event("INFO", "Started container", container=n)
        for n in sorted(plan.update):
            self.live_update(n)
        if plan.restart:
            self.terminator.restart(plan.restart)
        return result

    def run_status(self, names: list[str]) -> dict[str, RunStatus]:
        by_unit, complete = self.services.status([unit_name(n) for n in names])
        if not complete:
            log_event("WARN", "Status query was incomplete; unqueried containers are treated as inactive")
        return {n: by_unit.get(unit_name(n), RunStatus.INACTIVE) for n in names}

    def live_update(self, name: str) -> bool:
        """Switch a running container to its installed configuration in place.

        Best effort: failures are logged and reported as False.
        """
        link = comparator.installed_config_link(self.layout, name)
        try:
            system_path = comparator.read_config(link).get(SYSTEM_PATH_KEY)
        except OSError as e:
            log_event("WARN", f"Live update skipped, cannot read {link}: {e}", container=name)
            return False
        if not system_path:
            log_event("WARN", f"Live update skipped, {link} has no {SYSTEM_PATH_KEY}", container=name)
            return False

        res = self.runtime.exec(name, [f"{system_path}/bin/switch-to-configuration", "test"])
        if not res.ok:
            detail = textwrap.indent(res.output, "    ")
            log_event("WARN", f"Live update failed (exit code {res.returncode}):\n{detail}", container=name)
            return False
        log_event("INFO", "Updated container in place", container=name)
        return True
