# src/fdoctl/adapters/crypto/openssl_engine.py
from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Final

from fdoctl.ports.crypto import CryptoEngine, Subject


class OpenSSLCommandError(RuntimeError):
    def __init__(self, message: str, *, returncode: int | None) -> None:
        self.returncode = returncode
        super().__init__(message)


class OpenSSLEngine(CryptoEngine):
    """Engine shelling out to the ``openssl`` binary."""

    name = "openssl"

    def __init__(self, binary: str = "openssl") -> None:
        self._binary: Final[str] = binary

    def _run(self, args: list[str]) -> None:
        cmd = [self._binary, *args]
        try:
            p = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as exc:
            raise OpenSSLCommandError(f"{self._binary} could not be executed: {exc}", returncode=None) from exc
        if p.returncode != 0:
            detail = p.stderr.strip() or p.stdout.strip() or "no output"
            raise OpenSSLCommandError(f"openssl {args[0]} exited with {p.returncode}: {detail}", returncode=p.returncode)

    def generate_key(self, out: Path) -> None:
        out.parent.mkdir(parents=True, exist_ok=True)
        self._run(["ecparam", "-name", "prime256v1", "-genkey", "-noout", "-outform", "der", "-out", str(out)])

    def self_sign(self, key: Path, out: Path, subject: Subject, days: int) -> None:
        out.parent.mkdir(parents=True, exist_ok=True)
        self._run(
            [
                "req", "-x509",
                "-key", str(key), "-keyform", "der",
                "-out", str(out),
                "-days", str(days),
                "-subj", subject.openssl(),
            ]
        )
