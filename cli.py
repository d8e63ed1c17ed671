from __future__ import annotations

import argparse
import json
import sqlite3
import sys
import time
from typing import Callable

from ecr import db
from ecr.definitions import validate_container_name
from ecr.errors import ReconcileError
from ecr.host_ops import Host
from ecr.inventory import destroy, list_installed
from ecr.models import Policy, PassResult
from ecr.reconciler import Reconciler
from ecr.runtime import HostLock, require_root
from ecr.settings import Settings, settings
from ecr.terminator import Terminator


COMMANDS = {"create", "build", "list", "restart", "destroy", "events"}


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _add_build_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument("source", nargs="?", help="Nix file defining the containers")
    p.add_argument("-E", "--expr", help="Nix expression defining the containers (instead of a file)")
    p.add_argument("-A", "--attr", help="Attribute of the definition to build")
    p.add_argument("--nixos-path", help="Build against this NixOS source instead of <nixpkgs/nixos>")
    p.add_argument("--build-args", nargs=argparse.REMAINDER, default=[], help="Passed to nix-build; must be last")


def _parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ecr",
        description="Install and reconcile declarative NixOS containers. Unknown commands are passed to nixos-container.",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    s_create = sub.add_parser("create", help="Build, install and optionally start/update/restart containers")
    _add_build_flags(s_create)
    s_create.add_argument("-s", "--start", action="store_true", help="Start containers that are not running")
    s_create.add_argument(
        "-u", "--update-changed", action="store_true", help="Live-update running containers whose system changed; restart others"
    )
    s_create.add_argument("-r", "--restart-changed", action="store_true", help="Restart all running changed containers")

    s_build = sub.add_parser("build", help="Build and show what create would change, without installing")
    _add_build_flags(s_build)

    sub.add_parser("list", help="List installed containers")

    s_restart = sub.add_parser("restart", help="Restart containers (stop, terminate, start)")
    s_restart.add_argument("names", nargs="+")

    s_destroy = sub.add_parser("destroy", help="Stop containers and remove them from the host")
    s_destroy.add_argument("names", nargs="*")
    s_destroy.add_argument("--all", action="store_true", help="Destroy every installed container")

    s_ev = sub.add_parser("events", help="Show recent events")
    s_ev.add_argument("--limit", type=int, default=20)
    return p


def _build(args: argparse.Namespace, host: Host):
    return host.builder.build(
        args.source,
        expr=args.expr,
        attr=args.attr,
        nixos_path=args.nixos_path,
        build_args=args.build_args or [],
    )


def _summary(result: PassResult) -> dict:
    return {
        "classifications": {n: c.value for n, c in sorted(result.comparison.classifications.items())},
        "installed": [i.name for i in result.install.installed],
        "plan": {k: sorted(v) for k, v in result.plan.buckets().items()},
    }


def main(
    argv: list[str] | None = None,
    host: Host | None = None,
    cfg: Settings | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    host = host or Host.from_runner()
    cfg = cfg or settings

    if argv and not argv[0].startswith("-") and argv[0] not in COMMANDS:
        return host.runtime.forward(argv)

    args = _parser().parse_args(argv)
    layout = cfg.layout()
    terminator = Terminator(
        host.services, host.machines, attempts=cfg.terminate_attempts, delay_s=cfg.terminate_delay_s, sleep=sleep
    )
    reconciler = Reconciler(layout, host.services, host.runtime, terminator, redact_fields=cfg.redact_fields)

    try:
        if args.cmd == "list":
            for name in list_installed(layout):
                print(name)
            return 0

        if args.cmd == "events":
            try:
                events = db.latest_events(limit=args.limit)
            except (OSError, sqlite3.Error) as e:
                print(f"error: cannot read event log: {e}", file=sys.stderr)
                return 1
            _print(events)
            return 0

        if args.cmd == "build":
            root = _build(args, host)
            comparison = reconciler.compare(root)
            _print({"root": str(root), "classifications": {n: c.value for n, c in sorted(comparison.classifications.items())}})
            return 0

        require_root(cfg.require_root)

        if args.cmd == "create":
            # Build before taking the lock; nix-build may take a while.
            root = _build(args, host)
            policy = Policy(start=args.start, update_changed=args.update_changed, restart_changed=args.restart_changed)
            with HostLock(cfg.lock_path):
                result = reconciler.reconcile(root, policy)
            _print(_summary(result))
            return 0

        if args.cmd == "restart":
            for name in args.names:
                validate_container_name(name)
            with HostLock(cfg.lock_path):
                terminator.restart(args.names)
            return 0

        if args.cmd == "destroy":
            with HostLock(cfg.lock_path):
                destroyed = destroy(args.names, layout, host.services, host.runtime, all_installed=args.all)
            _print({"destroyed": destroyed})
            return 0
    except ReconcileError as e:
        db.log_event("ERROR", str(e))
        return e.exit_code

    return 2


def run() -> None:
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":
    run()
