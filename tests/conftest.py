import hashlib
import os
import sys
from pathlib import Path

import pytest

# Ensure project root is importable (so `import cli` / `import main` work reliably across environments)
_project_root = os.path.dirname(os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from ecr import db  # noqa: E402
from ecr.host_ops import CommandResult, Host  # noqa: E402
from ecr.settings import HostLayout, Settings  # noqa: E402


class FakeRunner:
    """Records every command; answers with canned results by argv prefix."""

    def __init__(self):
        self.calls = []
        self.handlers = []
        self.active = set()
        self.forwarded = []

    def on(self, *prefix, result=None, results=None, func=None):
        if results is not None:
            queue = list(results)

            def func(argv, queue=queue):
                return queue.pop(0) if len(queue) > 1 else queue[0]

        elif result is not None:
            func = lambda argv, result=result: result  # noqa: E731
        self.handlers.insert(0, (tuple(prefix), func))

    def __call__(self, argv):
        argv = list(argv)
        self.calls.append(argv)
        for prefix, func in self.handlers:
            if tuple(argv[: len(prefix)]) == prefix:
                return func(argv)
        if argv[:2] == ["systemctl", "is-active"]:
            states = ["active" if u in self.active else "inactive" for u in argv[2:]]
            return CommandResult(0 if all(s == "active" for s in states) else 3, stdout="\n".join(states) + "\n")
        return CommandResult(0)

    def call(self, argv):
        self.forwarded.append(list(argv))
        return 0

    def commands(self, *prefix):
        return [c for c in self.calls if tuple(c[: len(prefix)]) == prefix]

    def set_running(self, *names):
        self.active = {f"container@{n}.service" for n in names}


class TreeFactory:
    """Builds definition trees whose entries point into a fake Nix store."""

    def __init__(self, base: Path):
        self.base = base
        self.store = base / "store"
        self.store.mkdir(parents=True, exist_ok=True)
        self.count = 0

    def _store_file(self, filename: str, content: str) -> Path:
        digest = hashlib.sha1(f"{filename}\0{content}".encode()).hexdigest()[:12]
        d = self.store / f"{digest}-{filename}"
        d.mkdir(exist_ok=True)
        p = d / filename
        if not p.exists():
            p.write_text(content, encoding="utf-8")
        return p

    def build(self, containers: dict, skip_config=()) -> Path:
        """containers: name -> {"unit": str, "config": dict}"""
        self.count += 1
        root = self.base / f"result-{self.count}"
        (root / "units").mkdir(parents=True)
        (root / "containers").mkdir(parents=True)
        for name, entry in containers.items():
            unit_file = f"container@{name}.service"
            unit = self._store_file(unit_file, entry.get("unit", "[Service]\nExecStart=nspawn\n"))
            os.symlink(unit, root / "units" / unit_file)
            if name in skip_config:
                continue
            text = "".join(f"{k}={v}\n" for k, v in entry["config"].items())
            conf = self._store_file(f"{name}.conf", text)
            os.symlink(conf, root / "containers" / f"{name}.conf")
        return root


def container(system_path: str, unit: str = "[Service]\nExecStart=nspawn\n", **extra) -> dict:
    config = {"PRIVATE_NETWORK": "1", "HOST_ADDRESS": "10.231.0.1", "SYSTEM_PATH": system_path}
    config.update(extra)
    return {"unit": unit, "config": config}


@pytest.fixture(autouse=True)
def event_db(tmp_path, monkeypatch):
    """Isolated sqlite event log for every test."""
    monkeypatch.setattr(db, "settings", Settings(db_path=str(tmp_path / "events.db"), quiet=True))
    return tmp_path / "events.db"


@pytest.fixture
def layout(tmp_path) -> HostLayout:
    return HostLayout(
        unit_dir=tmp_path / "host" / "system",
        config_dir=tmp_path / "host" / "containers",
        gcroots_dir=tmp_path / "host" / "gcroots",
    )


@pytest.fixture
def cfg(tmp_path, layout) -> Settings:
    return Settings(
        db_path=str(tmp_path / "events.db"),
        lock_path=str(tmp_path / "ecr.lock"),
        require_root=False,
        quiet=True,
        unit_dir=str(layout.unit_dir),
        config_dir=str(layout.config_dir),
        gcroots_dir=str(layout.gcroots_dir),
        terminate_attempts=20,
        terminate_delay_s=0.0,
    )


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def host(runner) -> Host:
    return Host.from_runner(runner, call=runner.call)


@pytest.fixture
def trees(tmp_path) -> TreeFactory:
    return TreeFactory(tmp_path / "nix")


@pytest.fixture
def make_container():
    return container
