from __future__ import annotations

import json
import logging
import stat
import sys
from pathlib import Path

import pytest

from fdoctl.adapters.runtime.container import ContainerLauncher
from fdoctl.adapters.runtime.local import LocalLauncher
from fdoctl.ports.launcher import LaunchError
from fdoctl.services.logging import JsonFormatter, setup_logging

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX process groups and shell scripts")

_FAKE_RUNTIME = """#!/bin/sh
echo "$@" >> "{calls}"
case "$1" in
  run) echo "c0ffee" ;;
  inspect) if [ "$4" = "fdo-owner" ]; then echo true; else echo "Error: no such container $4" >&2; exit 125; fi ;;
  stop) if [ "$4" = "fdo-owner" ]; then echo "$4"; else echo "Error: no such container $4" >&2; exit 125; fi ;;
esac
"""


@pytest.fixture
def runtime(tmp_path: Path) -> tuple[str, Path]:
    calls = tmp_path / "calls.txt"
    script = tmp_path / "fake-podman"
    script.write_text(_FAKE_RUNTIME.format(calls=calls), encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return str(script), calls


def test_container_spawn_arguments(tmp_path: Path, runtime):
    binary, calls = runtime
    launcher = ContainerLauncher(binary, volumes=[tmp_path / "fdo"])

    handle = launcher.spawn(
        "fdo-owner",
        ["localhost/go-fdo-server:latest", "owner", "127.0.0.1:8043"],
        [8043],
        log_path=tmp_path / "logs" / "fdo-owner.log",
        env={"LOG_LEVEL": "debug"},
    )

    assert handle == {"kind": "container", "id": "c0ffee", "runtime": binary}
    assert calls.read_text(encoding="utf-8").split() == [
        "run", "-d", "--rm", "--name", "fdo-owner",
        "-p", "8043:8043",
        "-v", f"{tmp_path / 'fdo'}:{tmp_path / 'fdo'}:Z",
        "-e", "LOG_LEVEL=debug",
        "localhost/go-fdo-server:latest", "owner", "127.0.0.1:8043",
    ]
    assert "c0ffee" in (tmp_path / "logs" / "fdo-owner.log").read_text(encoding="utf-8")


def test_container_liveness_and_stop(runtime):
    binary, _ = runtime
    launcher = ContainerLauncher(binary)

    assert launcher.alive("fdo-owner", {}) is True
    assert launcher.alive("fdo-rendezvous", {}) is False
    launcher.terminate("fdo-owner", None)
    # already gone is not an error
    launcher.terminate("fdo-rendezvous", None)


def test_container_spawn_requires_image(tmp_path: Path, runtime):
    with pytest.raises(LaunchError):
        ContainerLauncher(runtime[0]).spawn("x", [], [], log_path=tmp_path / "x.log")


def test_local_launcher_passes_service_environment(tmp_path: Path):
    launcher = LocalLauncher()
    out = tmp_path / "env.json"
    code = (
        "import json, os, sys; "
        "json.dump({k: os.environ[k] for k in ('FDOCTL_SERVICE_NAME', 'FDOCTL_SERVICE_PORTS', 'EXTRA')}, open(sys.argv[1], 'w'))"
    )

    handle = launcher.spawn(
        "svc",
        [sys.executable, "-c", code, str(out)],
        [8041, 8042],
        log_path=tmp_path / "svc.log",
        env={"EXTRA": "1"},
    )
    launcher._procs["svc"].wait(timeout=30)

    assert handle["kind"] == "local"
    assert launcher.alive("svc", handle) is False
    assert json.loads(out.read_text(encoding="utf-8")) == {
        "FDOCTL_SERVICE_NAME": "svc",
        "FDOCTL_SERVICE_PORTS": "8041,8042",
        "EXTRA": "1",
    }
    # terminating an exited process is a no-op
    launcher.terminate("svc", handle)


def test_local_launcher_rejects_empty_command(tmp_path: Path):
    with pytest.raises(LaunchError):
        LocalLauncher().spawn("svc", [], [], log_path=tmp_path / "svc.log")


def test_json_logging_to_file(tmp_path: Path):
    log_file = tmp_path / "logs" / "fdoctl.log"
    logger = setup_logging("debug", log_file=log_file)

    logging.getLogger("fdoctl.test").debug("hello %s", "world")
    for handler in logger.handlers:
        handler.flush()

    record = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
    assert record["msg"] == "hello world"
    assert record["level"] == "DEBUG"
    assert record["logger"] == "fdoctl.test"


def test_json_formatter_includes_exception():
    try:
        raise ValueError("bad")
    except ValueError:
        record = logging.LogRecord("fdoctl", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

    payload = json.loads(JsonFormatter().format(record))

    assert payload["msg"] == "failed"
    assert "ValueError: bad" in payload["exc"]


@pytest.mark.skipif(not Path("/proc/self/stat").exists(), reason="needs /proc")
def test_local_handle_records_process_identity(tmp_path: Path):
    launcher = LocalLauncher()

    handle = launcher.spawn("sleeper", [sys.executable, "-c", "import time; time.sleep(30)"], [], log_path=tmp_path / "s.log")
    try:
        assert handle["start"]
        # a fresh launcher only has the persisted handle to go on
        assert LocalLauncher().alive("sleeper", handle) is True
        assert LocalLauncher().alive("sleeper", {**handle, "start": "0"}) is False
    finally:
        launcher.terminate("sleeper", handle, timeout=2.0)

    assert LocalLauncher().alive("sleeper", handle) is False
