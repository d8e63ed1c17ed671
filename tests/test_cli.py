import json

import pytest

import cli
from ecr import db, runtime
from ecr.host_ops import CommandResult
from ecr.settings import Settings


def _run(argv, host, cfg, capsys):
    code = cli.main(argv, host=host, cfg=cfg, sleep=lambda s: None)
    return code, capsys.readouterr().out


@pytest.fixture
def built(trees, make_container, runner):
    root = trees.build({"foo": make_container("/nix/store/sys-foo-1"), "bar": make_container("/nix/store/sys-bar-1")})
    runner.on("nix-build", result=CommandResult(0, stdout=f"{root}\n"))
    return root


def test_unknown_command_is_forwarded(host, cfg, runner, capsys):
    code, _ = _run(["root-login", "foo"], host, cfg, capsys)
    assert code == 0
    assert runner.forwarded == [["nixos-container", "root-login", "foo"]]


def test_create_installs_and_starts(built, host, cfg, runner, capsys):
    code, out = _run(["create", "containers.nix", "--start", "--build-args", "--show-trace"], host, cfg, capsys)

    assert code == 0
    summary = json.loads(out)
    assert summary["classifications"] == {"bar": "fully-changed", "foo": "fully-changed"}
    assert summary["plan"]["start"] == ["bar", "foo"]
    assert runner.commands("nix-build") == [["nix-build", "containers.nix", "--no-out-link", "--show-trace"]]
    assert runner.commands("systemctl", "start") == [
        ["systemctl", "start", "container@bar.service", "container@foo.service"]
    ]


def test_build_is_a_dry_run(built, host, cfg, layout, capsys):
    code, out = _run(["build", "-E", "{ }"], host, cfg, capsys)
    assert code == 0
    assert json.loads(out)["classifications"] == {"bar": "fully-changed", "foo": "fully-changed"}
    assert not layout.unit_dir.exists()


def test_list(built, host, cfg, capsys):
    _run(["create", "containers.nix"], host, cfg, capsys)
    code, out = _run(["list"], host, cfg, capsys)
    assert code == 0
    assert out.split() == ["bar", "foo"]


def test_build_failure_exits_1(host, cfg, runner, capsys):
    runner.on("nix-build", result=CommandResult(1, stderr="error: syntax error"))
    code, _ = _run(["create", "containers.nix"], host, cfg, capsys)
    assert code == 1


def test_no_definitions_exits_1(tmp_path, host, cfg, runner, capsys):
    (tmp_path / "empty" / "units").mkdir(parents=True)
    runner.on("nix-build", result=CommandResult(0, stdout=f"{tmp_path / 'empty'}\n"))
    code, _ = _run(["create", "containers.nix", "-s"], host, cfg, capsys)
    assert code == 1


def test_requires_root(monkeypatch, tmp_path, host, runner, capsys):
    monkeypatch.setattr(runtime.os, "geteuid", lambda: 1000)
    strict = Settings(require_root=True, lock_path=str(tmp_path / "l"), db_path=str(tmp_path / "e.db"))
    code, _ = _run(["restart", "foo"], host, strict, capsys)
    assert code == 1
    assert runner.calls == []


def test_restart_timeout_exits_1(host, cfg, runner, capsys):
    runner.on("machinectl", "terminate", result=CommandResult(1, stderr="Connection timed out"))
    code, _ = _run(["restart", "foo"], host, cfg, capsys)
    assert code == 1
    assert len(runner.commands("machinectl", "terminate")) == 20
    assert runner.commands("systemctl", "start") == []


def test_restart_already_gone(host, cfg, runner, capsys):
    runner.on("machinectl", "terminate", result=CommandResult(1, stderr="No machine 'foo' known"))
    code, _ = _run(["restart", "foo"], host, cfg, capsys)
    assert code == 0
    assert runner.commands("systemctl", "start") == [["systemctl", "start", "container@foo.service"]]


def test_restart_rejects_bad_names(host, cfg, runner, capsys):
    code, _ = _run(["restart", "../etc"], host, cfg, capsys)
    assert code == 1
    assert runner.calls == []


def test_destroy_without_name_exits_1(host, cfg, capsys):
    code, _ = _run(["destroy"], host, cfg, capsys)
    assert code == 1


def test_destroy_all(built, host, cfg, capsys):
    _run(["create", "containers.nix"], host, cfg, capsys)
    code, out = _run(["destroy", "--all"], host, cfg, capsys)
    assert code == 0
    assert json.loads(out) == {"destroyed": ["bar", "foo"]}


def test_lock_busy_exits_1(built, host, cfg, capsys):
    with runtime.HostLock(cfg.lock_path):
        code, _ = _run(["create", "containers.nix"], host, cfg, capsys)
    assert code == 1


def test_events(host, cfg, capsys):
    _run(["destroy"], host, cfg, capsys)
    code, out = _run(["events", "--limit", "5"], host, cfg, capsys)
    assert code == 0
    events = json.loads(out)
    assert events[0]["level"] == "ERROR"
    assert "destroy" in events[0]["message"]


def test_destroy_rejects_bad_names(host, cfg, runner, layout, capsys):
    layout.gcroots_dir.mkdir(parents=True)
    victim = layout.gcroots_dir.parent / "victim"
    victim.write_text("keep", encoding="utf-8")

    code, _ = _run(["destroy", "../victim"], host, cfg, capsys)

    assert code == 1
    assert victim.exists()
    assert runner.calls == []


def test_events_with_unreadable_db_exits_1(tmp_path, monkeypatch, host, cfg, capsys):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.setattr(db, "settings", Settings(db_path=str(blocker / "ecr.db"), quiet=True))

    code = cli.main(["events"], host=host, cfg=cfg, sleep=lambda s: None)

    assert code == 1
    assert "cannot read event log" in capsys.readouterr().err
