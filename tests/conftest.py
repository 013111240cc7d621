from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

import httpx
import pytest

from fdoctl.ports.launcher import Handle, ProcessLauncher
from fdoctl.services.settings import RetrySettings, Settings


class FakeLauncher(ProcessLauncher):
    """In-memory launcher; processes stay alive until terminated or marked dead."""

    kind = "local"

    def __init__(self) -> None:
        self.spawned: list[tuple[str, list[str], tuple[int, ...]]] = []
        self.terminated: list[str] = []
        self.running: set[str] = set()
        self._next_pid = 1000

    def spawn(self, name, command, ports, *, log_path, cwd=None, env=None) -> Handle:
        self._next_pid += 1
        self.spawned.append((name, list(command), tuple(ports)))
        self.running.add(name)
        return {"kind": self.kind, "pid": self._next_pid}

    def alive(self, name: str, handle: Handle) -> bool:
        return name in self.running

    def terminate(self, name: str, handle: Optional[Handle], *, timeout: float = 5.0) -> None:
        self.terminated.append(name)
        self.running.discard(name)


class Recorder:
    """httpx.MockTransport handler dispatching on (method, path)."""

    def __init__(self, routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response] | int] | None = None) -> None:
        self.routes = dict(routes or {})
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, int):
            return httpx.Response(route, json={"status": "ok"} if route < 300 else {"error": "boom"})
        return route(request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def seen(self) -> list[tuple[str, str]]:
        return [(r.method, r.url.path) for r in self.requests]


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    s = Settings(
        fixture_dir=str(tmp_path / "fdo"),
        repos_dir=str(tmp_path / "repos"),
        state_dir=str(tmp_path / "state"),
    )
    s.http.retry = RetrySettings(attempts=2, delay=0.0)
    return s


@pytest.fixture
def fake_launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture(autouse=True)
def _reset_fdoctl_logger():
    yield
    logger = logging.getLogger("fdoctl")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


def healthy_routes(settings: Settings) -> dict[tuple[str, str], Any]:
    return {("GET", svc.health_path): 200 for svc in settings.services}


def no_sleep(_: float) -> None:
    return None


def paths_of(requests: Sequence[httpx.Request]) -> list[str]:
    return [f"{r.url.port}{r.url.path}" for r in requests]
