# src/fdoctl/adapters/fs/path_provider.py
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path


@dataclass(slots=True)
class PathProvider:
    """Single source of truth for fixture paths. Always works with pathlib.Path."""

    root: Path

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).expanduser().resolve()

    # --- fixture subdirectories ---
    def certs_dir(self) -> Path:
        return (self.root / "certs").resolve()

    def db_dir(self) -> Path:
        return (self.root / "db").resolve()

    def files_dir(self) -> Path:
        return (self.root / "files").resolve()

    # --- role material ---
    def key_path(self, role: str) -> Path:
        return self.certs_dir() / f"{role}.key"

    def cert_path(self, role: str) -> Path:
        return self.certs_dir() / f"{role}.crt"

    def subdirs(self) -> tuple[Path, ...]:
        return (self.certs_dir(), self.db_dir(), self.files_dir())
