from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(x.strip() for x in raw.split(",") if x.strip())


@dataclass(frozen=True)
class HostLayout:
    """Host-mutable directories the installer writes to."""

    unit_dir: Path
    config_dir: Path
    gcroots_dir: Path


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("ECR_DB_PATH", "/var/lib/ecr/ecr.db")
    lock_path: str = os.getenv("ECR_LOCK_PATH", "/run/ecr.lock")
    require_root: bool = _env_bool("ECR_REQUIRE_ROOT", True)
    quiet: bool = _env_bool("ECR_QUIET", False)

    # Host layout
    unit_dir: str = os.getenv("ECR_UNIT_DIR", "/etc/systemd-mutable/system")
    config_dir: str = os.getenv("ECR_CONFIG_DIR", "/etc/containers")
    gcroots_dir: str = os.getenv("ECR_GCROOTS_DIR", "/nix/var/nix/gcroots/ecr")

    # Restart / terminate loop
    terminate_attempts: int = _env_int("ECR_TERMINATE_ATTEMPTS", 20)
    terminate_delay_s: float = _env_float("ECR_TERMINATE_DELAY_S", 0.1)

    # Config fields that are ignored when deciding whether a config change
    # can be applied as a live update. Must track the fields the builder
    # generates per system closure.
    redact_fields: tuple[str, ...] = _env_list("ECR_REDACT_FIELDS", ("SYSTEM_PATH",))

    # Status API (optional)
    api_user: str = os.getenv("ECR_API_USER", "admin")
    api_password: str | None = os.getenv("ECR_API_PASSWORD")

    def layout(self) -> HostLayout:
        return HostLayout(
            unit_dir=Path(self.unit_dir),
            config_dir=Path(self.config_dir),
            gcroots_dir=Path(self.gcroots_dir),
        )


settings = Settings()
