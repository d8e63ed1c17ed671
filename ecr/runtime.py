from __future__ import annotations

import fcntl
import os
from pathlib import Path
from types import TracebackType

from .errors import LockBusy, PermissionDenied


def require_root(enabled: bool = True) -> None:
    """Mutating commands write to /etc and the Nix GC roots."""
    if enabled and os.geteuid() != 0:
        raise PermissionDenied("This command must be run as root.")


class HostLock:
    """Advisory lock serializing invocations that mutate host state.

    Non-blocking: a second invocation fails with LockBusy instead of racing
    on the unit/config/gcroot directories.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._fd: int | None = None

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise LockBusy(f"Another invocation holds {self.path}; try again later.") from None
        self._fd = fd

    def release(self) -> None:
        if self._fd is None:
            return
        fcntl.flock(self._fd, fcntl.LOCK_UN)
        os.close(self._fd)
        self._fd = None

    def __enter__(self) -> "HostLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
