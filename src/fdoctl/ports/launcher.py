from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional, Protocol, Sequence

Handle = dict[str, Any]


class LaunchError(RuntimeError): ...


class ProcessLauncher(Protocol):
    kind: str

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
        """Start ``command`` without waiting for it; return a JSON-serialisable handle."""

    def alive(self, name: str, handle: Handle) -> bool: ...

    def terminate(self, name: str, handle: Optional[Handle], *, timeout: float = 5.0) -> None:
        """Stop the process; absent processes are not an error."""
