from __future__ import annotations

import os
import sqlite3
import sys
from datetime import datetime, timezone
from typing import Any

from .settings import settings


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is a directory, the DB file is placed inside it.
    Missing parent directories are created.
    """

    p = os.path.abspath(settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "ecr.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


_initialized: set[str] = set()


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path())
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              container TEXT,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            """
        )


def ensure_db() -> None:
    """Create the schema once per process and database path."""
    path = _resolve_db_path()
    if path in _initialized:
        return
    init_db()
    _initialized.add(path)


def _echo(level: str, message: str, container: str | None) -> None:
    if level == "INFO" and settings.quiet:
        return
    prefix = f"[{container}] " if container else ""
    print(f"{level.lower()}: {prefix}{message}", file=sys.stderr)


def log_event(level: str, message: str, container: str | None = None) -> None:
    """Record an event and echo it to stderr.

    Unprivileged commands (list, build) usually cannot write the database;
    the event is then only echoed.
    """
    level = level.upper()
    _echo(level, message, container)
    try:
        ensure_db()
        with connect() as conn:
            conn.execute(
                "INSERT INTO events (ts, level, container, message) VALUES (?, ?, ?, ?)",
                (utc_now(), level, container, message),
            )
    except (OSError, sqlite3.Error):
        return


def latest_events(limit: int = 100) -> list[dict[str, Any]]:
    ensure_db()
    with connect() as conn:
        rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]
