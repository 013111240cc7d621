"""Runs the external FDO device client (DI, inspection, TO) as one-shot commands."""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path
from typing import Mapping, Sequence

from fdoctl.services.errors import ProcessError
from fdoctl.services.http.sequencer import render
from fdoctl.services.settings import ClientSettings

_log = logging.getLogger("fdoctl.device_client")


class DeviceClient:
    def __init__(self, settings: ClientSettings, values: Mapping[str, str]) -> None:
        self._settings = settings
        self._values = dict(values)

    def _render(self, argv: Sequence[str]) -> list[str]:
        try:
            return [render(a, self._values) for a in argv]
        except KeyError as exc:
            raise ProcessError(f"device client: {exc.args[0]}", name="device-client") from exc

    def run(self, label: str, argv: Sequence[str]) -> str:
        cmd = self._render(argv)
        cwd = Path(self._render([self._settings.workdir])[0])
        _log.info("device client %s: %s (cwd=%s)", label, cmd, cwd)
        try:
            p = subprocess.run(
                cmd,
                cwd=str(cwd) if cwd.is_dir() else None,
                capture_output=True,
                text=True,
                timeout=self._settings.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise ProcessError(f"device client {label} failed: {exc}", name="device-client") from exc
        output = (p.stdout or "") + (p.stderr or "")
        if p.returncode != 0:
            tail = output.strip().splitlines()[-5:]
            raise ProcessError(
                f"device client {label} exited with {p.returncode}: {' | '.join(tail) or 'no output'}",
                name="device-client",
            )
        return output

    def device_init(self) -> str:
        return self.run("di", self._settings.di_command)

    def guid(self, output: str | None = None) -> str:
        """GUID printed by the client; reads the credential with the inspect command unless output is given."""
        text = output if output is not None else self.run("inspect", self._settings.inspect_command)
        match = re.search(self._settings.guid_pattern, text)
        if not match:
            raise ProcessError("device client output contains no GUID", name="device-client")
        return match.group(1).replace("-", "").lower()

    def transfer_ownership(self) -> str:
        return self.run("to", self._settings.to_command)
