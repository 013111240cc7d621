from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True, slots=True)
class Subject:
    country: str
    organization: str
    common_name: str

    def openssl(self) -> str:
        return f"/C={self.country}/O={self.organization}/CN={self.common_name}"


class CryptoEngine(Protocol):
    name: str

    def generate_key(self, out: Path) -> None:
        """Write a new P-256 private key, DER encoded, to ``out``."""

    def self_sign(self, key: Path, out: Path, subject: Subject, days: int) -> None:
        """Write a PEM certificate for ``key``'s public key, self-signed by ``key``."""
