from __future__ import annotations


class ReconcileError(Exception):
    """Fatal error: aborts the whole invocation with a non-zero exit code."""

    exit_code = 1


class PermissionDenied(ReconcileError):
    pass


class NoDefinitionsFound(ReconcileError):
    pass


class InvalidContainerName(ReconcileError):
    pass


class MissingExpectedArtifact(ReconcileError):
    pass


class MissingContainerName(ReconcileError):
    pass


class TerminationTimeout(ReconcileError):
    pass


class BuildFailed(ReconcileError):
    pass


class HostCommandError(ReconcileError):
    """A host command whose failure leaves the pass in an unusable state."""

    def __init__(self, argv: list[str], returncode: int, output: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.output = output
        detail = f": {output.strip()}" if output.strip() else ""
        super().__init__(f"`{' '.join(argv)}` failed with exit code {returncode}{detail}")


class LockBusy(ReconcileError):
    pass
