"""Fixture store: the on-disk root holding certificates, databases and files."""

from __future__ import annotations

import logging
import os
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path

from fdoctl.adapters.fs.path_provider import PathProvider
from fdoctl.services.errors import FixtureIOError

_log = logging.getLogger("fdoctl.fixture")


@dataclass(frozen=True, slots=True)
class Fixture:
    paths: PathProvider
    created: bool

    @property
    def root(self) -> Path:
        return self.paths.root


def make_user_rwx(root: Path) -> None:
    """Equivalent of ``chmod -R u+rwX``: user read/write everywhere, execute on directories."""
    for dirpath, dirnames, filenames in os.walk(root):
        entries = [(Path(dirpath), True)]
        entries += [(Path(dirpath) / d, True) for d in dirnames]
        entries += [(Path(dirpath) / f, False) for f in filenames]
        for entry, is_dir in entries:
            mode = entry.stat().st_mode
            wanted = mode | stat.S_IRUSR | stat.S_IWUSR
            if is_dir or mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH):
                wanted |= stat.S_IXUSR
            if wanted != mode:
                entry.chmod(wanted)


def ensure_fixture(root: str | Path) -> Fixture:
    paths = PathProvider(root)
    created = not paths.root.exists()
    try:
        for p in (paths.root, *paths.subdirs()):
            p.mkdir(parents=True, exist_ok=True)
        make_user_rwx(paths.root)
    except OSError as exc:
        raise FixtureIOError(f"cannot prepare fixture at {paths.root}: {exc}", path=paths.root) from exc

    for p in (paths.root, *paths.subdirs()):
        if not os.access(p, os.W_OK | os.X_OK):
            raise FixtureIOError(f"fixture directory {p} is not writable", path=p)

    if created:
        _log.info("created fixture at %s", paths.root)
    else:
        _log.debug("fixture already present at %s", paths.root)
    return Fixture(paths=paths, created=created)


def clean(root: str | Path) -> bool:
    """Remove the fixture tree. Returns False when there was nothing to remove or removal failed."""
    target = Path(root).expanduser().resolve()
    if not target.exists():
        _log.info("fixture %s does not exist; nothing to clean", target)
        return False
    try:
        shutil.rmtree(target)
    except OSError:
        _log.warning("failed to remove fixture %s", target, exc_info=True)
        return False
    _log.info("removed fixture %s", target)
    return True
