# src/fdoctl/adapters/crypto/cryptography_engine.py
from __future__ import annotations

from pathlib import Path

from fdoctl.ports.crypto import CryptoEngine, Subject
from fdoctl.services.crypto import pki


class CryptographyEngine(CryptoEngine):
    """In-process engine backed by the ``cryptography`` package."""

    name = "cryptography"

    def generate_key(self, out: Path) -> None:
        pki.write_private_key(out, pki.generate_ec_key())

    def self_sign(self, key: Path, out: Path, subject: Subject, days: int) -> None:
        private = pki.load_private_key(key)
        pki.write_pem(out, pki.make_self_signed(private, subject, days))
