from __future__ import annotations

import json
import os
import sys
import time
from pathlib import Path

import pytest

from conftest import FakeLauncher, Recorder, no_sleep
from fdoctl.adapters.runtime import local
from fdoctl.adapters.runtime.local import LocalLauncher
from fdoctl.ports.launcher import LaunchError
from fdoctl.services.errors import ProbeError, ProcessError
from fdoctl.services.http.client import HttpClient
from fdoctl.services.http.probe import HttpProber, RetryPolicy
from fdoctl.services.orchestrator import ManagedProcess, ProcessOrchestrator, ProcessStatus

HEALTH = "http://localhost:8041/health"
SLEEPER = [sys.executable, "-c", "import time; time.sleep(30)"]


def _orchestrator(tmp_path: Path, launcher, rec: Recorder | None = None, sleep=no_sleep) -> ProcessOrchestrator:
    prober = HttpProber(HttpClient(transport=(rec or Recorder()).transport()), sleep=sleep)
    return ProcessOrchestrator(
        launcher,
        log_dir=tmp_path / "logs",
        prober=prober,
        state_file=tmp_path / "state" / "processes.json",
        stop_timeout=2.0,
    )


def test_stop_unknown_name_is_a_no_op(tmp_path: Path, fake_launcher: FakeLauncher):
    orch = _orchestrator(tmp_path, fake_launcher)

    orch.stop("never-started")

    assert fake_launcher.terminated == []


def test_start_returns_starting_and_is_idempotent(tmp_path: Path, fake_launcher: FakeLauncher):
    orch = _orchestrator(tmp_path, fake_launcher)

    first = orch.start("fdo-owner", ["server", "owner"], [8043])
    second = orch.start("fdo-owner", ["server", "owner"], [8043])

    assert first.status is ProcessStatus.STARTING
    assert second is first
    assert len(fake_launcher.spawned) == 1
    assert fake_launcher.spawned[0] == ("fdo-owner", ["server", "owner"], (8043,))


def test_wait_ready_marks_running(tmp_path: Path, fake_launcher: FakeLauncher):
    orch = _orchestrator(tmp_path, fake_launcher, Recorder({("GET", "/health"): 200}))
    orch.start("fdo-rendezvous", ["server"], [8041])

    proc = orch.wait_ready("fdo-rendezvous", HEALTH, RetryPolicy.fixed(3, 0.0))

    assert proc.status is ProcessStatus.RUNNING
    assert orch.status("fdo-rendezvous").status is ProcessStatus.RUNNING


def test_wait_ready_failure_marks_failed(tmp_path: Path, fake_launcher: FakeLauncher):
    orch = _orchestrator(tmp_path, fake_launcher, Recorder({("GET", "/health"): 503}))
    orch.start("fdo-rendezvous", ["server"], [8041])

    with pytest.raises(ProbeError) as err:
        orch.wait_ready("fdo-rendezvous", HEALTH, RetryPolicy.fixed(2, 0.0))

    assert err.value.attempts == 2
    assert orch.status("fdo-rendezvous").status is ProcessStatus.FAILED


def test_wait_ready_requires_started_process(tmp_path: Path, fake_launcher: FakeLauncher):
    orch = _orchestrator(tmp_path, fake_launcher)

    with pytest.raises(ProcessError):
        orch.wait_ready("fdo-owner", HEALTH, RetryPolicy())


def test_dead_process_is_reported_failed(tmp_path: Path, fake_launcher: FakeLauncher):
    orch = _orchestrator(tmp_path, fake_launcher)
    orch.start("fdo-owner", ["server"], [8043])

    fake_launcher.running.discard("fdo-owner")

    assert orch.status("fdo-owner").status is ProcessStatus.FAILED
    # a failed entry can be started again
    orch.start("fdo-owner", ["server"], [8043])
    assert len(fake_launcher.spawned) == 2


def test_spawn_failure_becomes_process_error(tmp_path: Path, fake_launcher: FakeLauncher):
    def boom(*args, **kwargs):
        raise LaunchError("cannot execute server")

    fake_launcher.spawn = boom
    orch = _orchestrator(tmp_path, fake_launcher)

    with pytest.raises(ProcessError) as err:
        orch.start("fdo-owner", ["server"], [8043])

    assert err.value.name == "fdo-owner"
    assert orch.status("fdo-owner").status is ProcessStatus.FAILED


def test_state_survives_a_new_orchestrator(tmp_path: Path, fake_launcher: FakeLauncher):
    orch = _orchestrator(tmp_path, fake_launcher)
    orch.start("fdo-rendezvous", ["server", "rendezvous"], [8041])
    orch.start("fdo-owner", ["server", "owner"], [8043])

    state = json.loads((tmp_path / "state" / "processes.json").read_text(encoding="utf-8"))
    assert sorted(p["name"] for p in state["processes"]) == ["fdo-owner", "fdo-rendezvous"]

    later = _orchestrator(tmp_path, fake_launcher)
    assert [p.name for p in later.list()] == ["fdo-owner", "fdo-rendezvous"]

    assert later.stop_all() == []
    assert sorted(fake_launcher.terminated) == ["fdo-owner", "fdo-rendezvous"]
    assert later.list() == []
    assert json.loads((tmp_path / "state" / "processes.json").read_text(encoding="utf-8")) == {"processes": []}


def test_state_of_other_launcher_kind_is_ignored(tmp_path: Path, fake_launcher: FakeLauncher):
    state_file = tmp_path / "state" / "processes.json"
    state_file.parent.mkdir(parents=True)
    entry = ManagedProcess(name="fdo-owner", command=["img"], ports=(8043,), handle={"kind": "container", "id": "c1"})
    state_file.write_text(json.dumps({"processes": [entry.to_dict()]}), encoding="utf-8")

    orch = _orchestrator(tmp_path, fake_launcher)

    assert orch.list() == []


def test_unreadable_state_is_ignored(tmp_path: Path, fake_launcher: FakeLauncher):
    state_file = tmp_path / "state" / "processes.json"
    state_file.parent.mkdir(parents=True)
    state_file.write_text("{not json", encoding="utf-8")

    assert _orchestrator(tmp_path, fake_launcher).list() == []


def test_stop_all_is_best_effort(tmp_path: Path, fake_launcher: FakeLauncher):
    orch = _orchestrator(tmp_path, fake_launcher)
    orch.start("a", ["x"])
    orch.start("b", ["y"])
    original = fake_launcher.terminate

    def terminate(name, handle, *, timeout=5.0):
        if name == "a":
            raise LaunchError("permission denied")
        original(name, handle, timeout=timeout)

    fake_launcher.terminate = terminate

    assert orch.stop_all() == ["a"]
    assert fake_launcher.terminated == ["b"]
    assert [p.name for p in orch.list()] == ["a"]


def test_managed_process_round_trips_through_dict():
    proc = ManagedProcess(name="n", command=["c"], ports=(1, 2), handle={"kind": "local", "pid": 7}, status=ProcessStatus.RUNNING, started_at=1.5)

    assert ManagedProcess.from_dict(proc.to_dict()) == proc


def test_local_process_start_and_stop(tmp_path: Path):
    orch = _orchestrator(tmp_path, LocalLauncher())

    proc = orch.start("sleeper", SLEEPER, [9999])
    pid = proc.handle["pid"]

    assert orch.status("sleeper").status is ProcessStatus.STARTING
    assert (tmp_path / "logs" / "sleeper.log").exists()

    orch.stop("sleeper")

    assert orch.status("sleeper") is None
    assert LocalLauncher().alive("sleeper", {"pid": pid}) is False
    orch.stop("sleeper")


def test_local_process_exit_aborts_readiness_wait(tmp_path: Path):
    launcher = LocalLauncher()
    orch = _orchestrator(tmp_path, launcher, Recorder({("GET", "/health"): 503}), sleep=time.sleep)
    orch.start("short-lived", [sys.executable, "-c", "pass"])

    with pytest.raises(ProbeError) as err:
        orch.wait_ready("short-lived", HEALTH, RetryPolicy.fixed(100, 0.1))

    assert err.value.reason == "short-lived exited"
    assert orch.status("short-lived").status is ProcessStatus.FAILED


def test_local_launcher_reports_missing_executable(tmp_path: Path):
    orch = _orchestrator(tmp_path, LocalLauncher())

    with pytest.raises(ProcessError):
        orch.start("ghost", [str(tmp_path / "no-such-binary")])


def test_stale_state_with_reused_pid_is_not_signalled(tmp_path: Path, monkeypatch):
    signals = []
    monkeypatch.setattr(local.os, "killpg", lambda pid, sig: signals.append(("killpg", pid, sig)))
    monkeypatch.setattr(local.os, "kill", lambda pid, sig: signals.append(("kill", pid, sig)))
    state_file = tmp_path / "state" / "processes.json"
    state_file.parent.mkdir(parents=True)
    # our own pid stands in for an unrelated process that inherited the recorded pid
    entry = ManagedProcess(
        name="fdo-owner",
        command=["server", "owner"],
        ports=(8043,),
        handle={"kind": "local", "pid": os.getpid(), "start": "not-the-recorded-start"},
        status=ProcessStatus.RUNNING,
    )
    state_file.write_text(json.dumps({"processes": [entry.to_dict()]}), encoding="utf-8")

    orch = _orchestrator(tmp_path, LocalLauncher())

    assert orch.status("fdo-owner").status is ProcessStatus.FAILED
    assert orch.stop_all() == []
    assert orch.list() == []
    assert signals == []
