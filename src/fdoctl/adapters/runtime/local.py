# src/fdoctl/adapters/runtime/local.py
from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from pathlib import Path
from typing import Mapping, Optional, Sequence

from fdoctl.ports.launcher import Handle, LaunchError, ProcessLauncher

_log = logging.getLogger("fdoctl.runtime.local")


def _start_ticks(pid: int) -> Optional[str]:
    """Kernel start time of ``pid`` (field 22 of /proc/<pid>/stat), None where unavailable."""
    try:
        with open(f"/proc/{pid}/stat", encoding="utf-8") as fh:
            data = fh.read()
    except OSError:
        return None
    fields = data[data.rindex(")") + 2 :].split()
    return fields[19] if len(fields) > 19 else None


def _same_process(pid: int, start: Optional[str]) -> bool:
    """True if ``pid`` is still the process recorded with ``start``; a reused pid is not."""
    if start is None:
        return _pid_alive(pid)
    return _start_ticks(pid) == start


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class LocalLauncher(ProcessLauncher):
    """Runs services as detached local processes, output appended to a log file."""

    kind = "local"

    def __init__(self) -> None:
        self._procs: dict[str, subprocess.Popen] = {}

    def spawn(
        self,
        name: str,
        command: Sequence[str],
        ports: Sequence[int],
        *,
        log_path: Path,
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> Handle:
        if not command:
            raise LaunchError(f"{name}: empty command")
        full_env = os.environ.copy()
        full_env.update(env or {})
        full_env["FDOCTL_SERVICE_NAME"] = name
        full_env["FDOCTL_SERVICE_PORTS"] = ",".join(str(p) for p in ports)

        log_path.parent.mkdir(parents=True, exist_ok=True)
        _log.info("starting %s cmd=%s cwd=%s", name, list(command), cwd)
        try:
            with open(log_path, "a", encoding="utf-8") as logf:
                proc = subprocess.Popen(
                    list(command),
                    cwd=str(cwd) if cwd else None,
                    env=full_env,
                    stdin=subprocess.DEVNULL,
                    stdout=logf,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        except OSError as exc:
            raise LaunchError(f"{name}: cannot execute {command[0]}: {exc}") from exc
        self._procs[name] = proc
        return {"kind": self.kind, "pid": proc.pid, "start": _start_ticks(proc.pid)}

    def alive(self, name: str, handle: Handle) -> bool:
        proc = self._procs.get(name)
        if proc is not None and proc.pid == handle.get("pid"):
            return proc.poll() is None
        pid = handle.get("pid")
        return isinstance(pid, int) and _same_process(pid, handle.get("start"))

    def terminate(self, name: str, handle: Optional[Handle], *, timeout: float = 5.0) -> None:
        proc = self._procs.pop(name, None)
        pid = (handle or {}).get("pid") or (proc.pid if proc else None)
        start = (handle or {}).get("start")
        if not isinstance(pid, int) or not self._is_running(proc, pid, start):
            _log.debug("%s is not running; nothing to stop", name)
            return

        self._signal(pid, signal.SIGTERM)
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline and self._is_running(proc, pid, start):
            time.sleep(0.05)
        if self._is_running(proc, pid, start):
            _log.warning("%s did not exit after SIGTERM; killing", name)
            self._signal(pid, signal.SIGKILL)
            if proc is not None:
                proc.wait(timeout=timeout)

    # ------------------------------------------------------------------ internals
    @staticmethod
    def _is_running(proc: Optional[subprocess.Popen], pid: int, start: Optional[str] = None) -> bool:
        if proc is not None and proc.pid == pid:
            return proc.poll() is None
        return _same_process(pid, start)

    @staticmethod
    def _signal(pid: int, sig: int) -> None:
        # the service leads its own session, so signal the whole group
        try:
            os.killpg(pid, sig)
        except ProcessLookupError:
            return
        except PermissionError:
            try:
                os.kill(pid, sig)
            except ProcessLookupError:
                return
            except PermissionError as exc:
                raise LaunchError(f"not permitted to signal pid {pid}") from exc
