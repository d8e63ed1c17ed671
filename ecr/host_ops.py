from __future__ import annotations

import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence

from .errors import BuildFailed, HostCommandError
from .models import RunStatus


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return "\n".join(x for x in (self.stdout.strip(), self.stderr.strip()) if x)


Runner = Callable[[Sequence[str]], CommandResult]


def run_command(argv: Sequence[str]) -> CommandResult:
    try:
        proc = subprocess.run(list(argv), capture_output=True, text=True, check=False)
    except FileNotFoundError as e:
        return CommandResult(returncode=127, stderr=str(e))
    return CommandResult(returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)


class TerminateOutcome(str, Enum):
    TERMINATED = "terminated"
    ALREADY_GONE = "already-gone"
    FAILED = "failed"


@dataclass(frozen=True)
class TerminateResult:
    outcome: TerminateOutcome
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome is not TerminateOutcome.FAILED


def classify_terminate_output(text: str) -> TerminateOutcome:
    """Map a failed ``machinectl terminate`` message to an outcome.

    machinectl reports a vanished machine as
    ``Could not terminate machine: No machine 'foo' known``. If any member of
    the group is reported that way the machine is gone, which is what
    terminate was for.
    """
    for line in text.splitlines():
        if "No machine" in line and "known" in line:
            return TerminateOutcome.ALREADY_GONE
    return TerminateOutcome.FAILED


class ServiceManager:
    """systemd, driven through systemctl."""

    def __init__(self, run: Runner = run_command, binary: str = "systemctl") -> None:
        self.run = run
        self.binary = binary

    def _check(self, argv: list[str]) -> CommandResult:
        res = self.run(argv)
        if not res.ok:
            raise HostCommandError(argv, res.returncode, res.output)
        return res

    def start(self, units: Sequence[str]) -> None:
        if units:
            self._check([self.binary, "start", *units])

    def stop(self, units: Sequence[str]) -> CommandResult:
        """Stop units. The result is returned, not raised: callers decide."""
        if not units:
            return CommandResult(returncode=0)
        return self.run([self.binary, "stop", *units])

    def reload(self) -> None:
        self._check([self.binary, "daemon-reload"])

    def status(self, units: Sequence[str]) -> tuple[dict[str, RunStatus], bool]:
        """Query all units in one call.

        ``systemctl is-active`` prints one state per unit, in order, and exits
        non-zero when any unit is not active. Units without a state line are
        reported inactive. Returns (status by unit, complete).
        """
        if not units:
            return {}, True
        res = self.run([self.binary, "is-active", *units])
        lines = [x.strip() for x in res.stdout.splitlines() if x.strip()]
        out: dict[str, RunStatus] = {}
        for i, unit in enumerate(units):
            state = lines[i] if i < len(lines) else ""
            out[unit] = RunStatus.ACTIVE if state == "active" else RunStatus.INACTIVE
        return out, len(lines) >= len(units)


class MachineSupervisor:
    """systemd-machined, driven through machinectl."""

    def __init__(self, run: Runner = run_command, binary: str = "machinectl") -> None:
        self.run = run
        self.binary = binary

    def terminate(self, names: Sequence[str]) -> TerminateResult:
        res = self.run([self.binary, "terminate", *names])
        if res.ok:
            return TerminateResult(TerminateOutcome.TERMINATED)
        return TerminateResult(classify_terminate_output(res.output), res.output)


class ContainerRuntime:
    """nixos-container."""

    def __init__(
        self,
        run: Runner = run_command,
        binary: str = "nixos-container",
        call: Callable[[list[str]], int] = subprocess.call,
    ) -> None:
        self.run = run
        self.binary = binary
        self.call = call

    def destroy(self, name: str) -> CommandResult:
        return self.run([self.binary, "destroy", name])

    def exec(self, name: str, argv: Sequence[str]) -> CommandResult:
        return self.run([self.binary, "run", name, "--", *argv])

    def forward(self, argv: Sequence[str]) -> int:
        """Run an unrecognized subcommand with inherited stdio."""
        try:
            return self.call([self.binary, *argv])
        except FileNotFoundError:
            return 127


class Builder:
    """nix-build wrapper producing a definition tree."""

    def __init__(self, run: Runner = run_command, binary: str = "nix-build") -> None:
        self.run = run
        self.binary = binary

    def command(
        self,
        source: str | None = None,
        *,
        expr: str | None = None,
        attr: str | None = None,
        nixos_path: str | None = None,
        build_args: Sequence[str] = (),
    ) -> list[str]:
        if (source is None) == (expr is None):
            raise BuildFailed("Exactly one of a definition file or --expr is required.")
        argv = [self.binary]
        argv += ["-E", expr] if expr is not None else [str(source)]
        if attr:
            argv += ["-A", attr]
        if nixos_path:
            argv += ["-I", f"nixos={nixos_path}"]
        argv.append("--no-out-link")
        argv += list(build_args)
        return argv

    def build(self, source: str | None = None, **kwargs) -> Path:
        argv = self.command(source, **kwargs)
        res = self.run(argv)
        if not res.ok:
            raise BuildFailed(f"Build failed (exit code {res.returncode}):\n{res.stderr.strip()}")
        lines = [x for x in res.stdout.splitlines() if x.strip()]
        if not lines:
            raise BuildFailed("Build produced no output path.")
        return Path(lines[-1].strip())


@dataclass
class Host:
    """The external collaborators, bundled so commands can share one runner."""

    builder: Builder
    services: ServiceManager
    machines: MachineSupervisor
    runtime: ContainerRuntime

    @classmethod
    def from_runner(cls, run: Runner = run_command, call: Callable[[list[str]], int] = subprocess.call) -> "Host":
        return cls(
            builder=Builder(run),
            services=ServiceManager(run),
            machines=MachineSupervisor(run),
            runtime=ContainerRuntime(run, call=call),
        )
