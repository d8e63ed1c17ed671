from __future__ import annotations

import time
from typing import Callable, Iterable

from .db import log_event
from .errors import TerminationTimeout
from .host_ops import MachineSupervisor, ServiceManager, TerminateOutcome
from .models import unit_name


class Terminator:
    """Restart containers via stop, terminate (with retries) and start.

    ``systemctl restart`` does not reliably terminate the backing machine, so
    the machine is terminated explicitly between stopping and starting units.
    """

    def __init__(
        self,
        services: ServiceManager,
        machines: MachineSupervisor,
        attempts: int = 20,
        delay_s: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.services = services
        self.machines = machines
        self.attempts = max(1, int(attempts))
        self.delay_s = max(0.0, float(delay_s))
        self.sleep = sleep

    def terminate(self, names: list[str]) -> int:
        """Terminate machines; returns the number of attempts used."""
        for attempt in range(1, self.attempts + 1):
            res = self.machines.terminate(names)
            if res.outcome is TerminateOutcome.ALREADY_GONE:
                log_event("INFO", f"Machine already gone: {', '.join(names)}")
                return attempt
            if res.succeeded:
                return attempt
            log_event("WARN", f"Terminate attempt {attempt}/{self.attempts} failed: {res.message}")
            if attempt < self.attempts:
                self.sleep(self.delay_s)
        raise TerminationTimeout(
            f"Could not terminate {', '.join(names)} after {self.attempts} attempts; not starting them again."
        )

    def restart(self, names: Iterable[str]) -> None:
        group = sorted(set(names))
        if not group:
            return
        units = [unit_name(n) for n in group]

        # The machine may already be gone, in which case stop fails.
        stopped = self.services.stop(units)
        if not stopped.ok:
            log_event("WARN", f"Stopping {', '.join(units)} failed (ignored): {stopped.output}")

        self.terminate(group)
        self.services.start(units)
        for n in group:
            log_event("INFO", "Restarted container", container=n)
