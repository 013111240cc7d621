from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from fdoctl.ports.launcher import Handle, LaunchError, ProcessLauncher
from fdoctl.services.errors import ProbeError, ProcessError
from fdoctl.services.http.probe import HttpProber, RetryPolicy

_log = logging.getLogger("fdoctl.orchestrator")


class ProcessStatus(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"


@dataclass(slots=True)
class ManagedProcess:
    name: str
    command: list[str]
    ports: tuple[int, ...]
    handle: Handle = field(default_factory=dict)
    status: ProcessStatus = ProcessStatus.STOPPED
    started_at: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["ports"] = list(self.ports)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ManagedProcess":
        return cls(
            name=str(data["name"]),
            command=[str(x) for x in data.get("command") or []],
            ports=tuple(int(p) for p in data.get("ports") or ()),
            handle=dict(data.get("handle") or {}),
            status=ProcessStatus(data.get("status") or "stopped"),
            started_at=float(data.get("started_at") or 0.0),
        )


class ProcessOrchestrator:
    """Owns the name -> process table for one environment.

    When ``state_file`` is given the table is persisted as JSON, so a later
    invocation can stop services started by an earlier one.
    """

    def __init__(
        self,
        launcher: ProcessLauncher,
        *,
        log_dir: Path,
        prober: Optional[HttpProber] = None,
        state_file: Optional[Path] = None,
        stop_timeout: float = 5.0,
    ) -> None:
        self._launcher = launcher
        self._log_dir = Path(log_dir)
        self._prober = prober
        self._state_file = state_file
        self._stop_timeout = stop_timeout
        self._procs: dict[str, ManagedProcess] = {}
        self._load_state()

    # ------------------------------------------------------------------ public
    @property
    def launcher(self) -> ProcessLauncher:
        return self._launcher

    def start(self, name: str, command: Sequence[str], ports: Sequence[int] = (), *, cwd: Optional[Path] = None) -> ManagedProcess:
        """Spawn ``command`` and return immediately with status ``starting``."""
        current = self._procs.get(name)
        if current and current.status in (ProcessStatus.STARTING, ProcessStatus.RUNNING) and self._alive(current):
            _log.info("%s already %s", name, current.status.value)
            return current

        proc = ManagedProcess(name=name, command=list(command), ports=tuple(int(p) for p in ports))
        try:
            proc.handle = self._launcher.spawn(name, proc.command, proc.ports, log_path=self._log_dir / f"{name}.log", cwd=cwd)
        except LaunchError as exc:
            proc.status = ProcessStatus.FAILED
            self._procs[name] = proc
            self._save_state()
            raise ProcessError(str(exc), name=name) from exc

        proc.status = ProcessStatus.STARTING
        proc.started_at = time.time()
        self._procs[name] = proc
        self._save_state()
        _log.info("%s starting (%s)", name, proc.handle)
        return proc

    def wait_ready(self, name: str, url: str, policy: RetryPolicy, *, timeout: float = 5.0) -> ManagedProcess:
        """Probe ``url`` until it answers; ``starting`` becomes ``running`` or ``failed``."""
        proc = self._procs.get(name)
        if proc is None:
            raise ProcessError(f"{name} was never started", name=name)
        if self._prober is None:
            raise ProcessError("orchestrator has no prober configured", name=name)

        def _exited() -> Optional[str]:
            return None if self._alive(proc) else f"{name} exited"

        try:
            self._prober.probe(url, timeout, policy, abort_if=_exited)
        except ProbeError:
            proc.status = ProcessStatus.FAILED
            self._save_state()
            raise
        proc.status = ProcessStatus.RUNNING
        self._save_state()
        _log.info("%s running", name)
        return proc

    def status(self, name: str) -> Optional[ManagedProcess]:
        proc = self._procs.get(name)
        if proc is None:
            return None
        if proc.status in (ProcessStatus.STARTING, ProcessStatus.RUNNING) and not self._alive(proc):
            proc.status = ProcessStatus.FAILED
            self._save_state()
        return proc

    def list(self) -> list[ManagedProcess]:
        return [p for name in sorted(self._procs) if (p := self.status(name)) is not None]

    def stop(self, name: str) -> None:
        """Stop ``name``; unknown or already stopped names are a no-op."""
        proc = self._procs.get(name)
        if proc is None or proc.status == ProcessStatus.STOPPED:
            return
        try:
            self._launcher.terminate(name, proc.handle, timeout=self._stop_timeout)
        except LaunchError as exc:
            raise ProcessError(str(exc), name=name) from exc
        proc.status = ProcessStatus.STOPPED
        self._procs.pop(name, None)
        self._save_state()
        _log.info("%s stopped", name)

    def stop_all(self) -> list[str]:
        """Best-effort teardown of every tracked process; returns names that failed to stop."""
        failed: list[str] = []
        for name in list(self._procs):
            try:
                self.stop(name)
            except ProcessError:
                _log.warning("failed to stop %s", name, exc_info=True)
                failed.append(name)
        return failed

    # ------------------------------------------------------------------ internals
    def _alive(self, proc: ManagedProcess) -> bool:
        try:
            return self._launcher.alive(proc.name, proc.handle)
        except LaunchError:
            _log.debug("liveness check failed for %s", proc.name, exc_info=True)
            return False

    def _load_state(self) -> None:
        if self._state_file is None or not self._state_file.exists():
            return
        try:
            raw = json.loads(self._state_file.read_text(encoding="utf-8")) or {}
        except ValueError:
            _log.warning("ignoring unreadable process state %s", self._state_file)
            return
        kind = getattr(self._launcher, "kind", None)
        for entry in raw.get("processes") or []:
            try:
                proc = ManagedProcess.from_dict(entry)
            except (KeyError, TypeError, ValueError):
                _log.debug("skipping malformed process entry %r", entry)
                continue
            if proc.handle.get("kind") not in (None, kind):
                continue
            self._procs[proc.name] = proc

    def _save_state(self) -> None:
        if self._state_file is None:
            return
        self._state_file.parent.mkdir(parents=True, exist_ok=True)
        payload = {"processes": [p.to_dict() for p in self._procs.values()]}
        self._state_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
