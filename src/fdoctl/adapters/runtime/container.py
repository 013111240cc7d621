# src/fdoctl/adapters/runtime/container.py
from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Mapping, Optional, Sequence

from fdoctl.ports.launcher import Handle, LaunchError, ProcessLauncher

_log = logging.getLogger("fdoctl.runtime.container")


def detect_runtime() -> str:
    """podman if installed, otherwise docker."""
    for candidate in ("podman", "docker"):
        if shutil.which(candidate):
            return candidate
    raise LaunchError("no container runtime (podman or docker) found")


class ContainerLauncher(ProcessLauncher):
    """Runs each service as a named, detached container.

    The command's first element is the image; the rest are passed as arguments.
    Volumes are bind-mounted at the same path inside the container.
    """

    kind = "container"

    def __init__(self, runtime: Optional[str] = None, *, volumes: Sequence[Path] = (), network: Optional[str] = None) -> None:
        self._runtime = runtime
        self._volumes = [Path(v) for v in volumes]
        self._network = network

    @property
    def runtime(self) -> str:
        if self._runtime is None:
            self._runtime = detect_runtime()
        return self._runtime

    def _run(self, args: list[str], *, timeout: float | None = None) -> subprocess.CompletedProcess[str]:
        try:
            return subprocess.run([self.runtime, *args], capture_output=True, text=True, timeout=timeout)
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise LaunchError(f"{self.runtime} {args[0]} failed: {exc}") from exc

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
            raise LaunchError(f"{name}: no image configured")
        image, *argv = command
        args = ["run", "-d", "--rm", "--name", name]
        if self._network:
            args += ["--network", self._network]
        else:
            for port in ports:
                args += ["-p", f"{port}:{port}"]
        for volume in self._volumes:
            args += ["-v", f"{volume}:{volume}:Z"]
        for key, value in (env or {}).items():
            args += ["-e", f"{key}={value}"]
        if cwd:
            args += ["-w", str(cwd)]
        args += [image, *argv]

        _log.info("starting container %s from %s", name, image)
        p = self._run(args, timeout=300)
        if p.returncode != 0:
            raise LaunchError(f"{name}: {self.runtime} run exited with {p.returncode}: {p.stderr.strip()}")
        container_id = p.stdout.strip().splitlines()[-1] if p.stdout.strip() else name
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_path.write_text(f"container {name} id={container_id}\n", encoding="utf-8")
        return {"kind": self.kind, "id": container_id, "runtime": self.runtime}

    def alive(self, name: str, handle: Handle) -> bool:
        p = self._run(["inspect", "-f", "{{.State.Running}}", name], timeout=30)
        return p.returncode == 0 and p.stdout.strip().lower() == "true"

    def terminate(self, name: str, handle: Optional[Handle], *, timeout: float = 5.0) -> None:
        p = self._run(["stop", "-t", str(int(timeout)), name], timeout=timeout + 30)
        if p.returncode == 0:
            return
        detail = (p.stderr or p.stdout).strip()
        if "no such container" in detail.lower() or "no container with name" in detail.lower():
            _log.debug("container %s already gone", name)
            return
        raise LaunchError(f"{name}: {self.runtime} stop exited with {p.returncode}: {detail}")
