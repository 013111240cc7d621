"""Revision-pinned fetcher: keeps external source trees at exact commits."""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from fdoctl.adapters.git.cli_git import GitError
from fdoctl.ports.git import GitClient
from fdoctl.services.errors import FetchError
from fdoctl.services.settings import RepoSettings

_log = logging.getLogger("fdoctl.fetcher")

_COMMIT_RE = re.compile(r"^[0-9a-f]{40}$")


@dataclass(frozen=True, slots=True)
class PinnedRepo:
    name: str
    url: str
    path: Path
    commit: str
    cloned: bool = False


class RepoFetcher:
    def __init__(self, git: GitClient, repos_dir: Path) -> None:
        self._git = git
        self._repos_dir = Path(repos_dir)

    def ensure_repo(self, name: str, url: str, path: str | Path, commit: str) -> PinnedRepo:
        """Clone ``url`` into ``path`` if needed, fetch, and check out ``commit`` detached.

        A directory without a resolvable HEAD (e.g. an interrupted clone) is
        discarded and cloned again. One attempt only; callers decide on retries.
        """
        commit = commit.strip().lower()
        if not _COMMIT_RE.match(commit):
            raise FetchError(f"{name}: '{commit}' is not a 40-character commit hash", repo=name)

        target = Path(path)
        cloned = False
        try:
            if self._git.head(target) is None:
                if target.exists():
                    _log.warning("%s: %s is not a complete checkout; re-cloning", name, target)
                    shutil.rmtree(target)
                _log.info("%s: cloning %s into %s", name, url, target)
                self._git.clone(url, target)
                cloned = True
            elif self._git.remote_url(target) != url:
                _log.info("%s: updating origin to %s", name, url)
                self._git.set_remote_url(target, url)

            _log.info("%s: fetching", name)
            self._git.fetch(target)
            _log.info("%s: checking out %s", name, commit)
            self._git.checkout_detached(target, commit)
        except GitError as exc:
            raise FetchError(f"{name}: {exc}", repo=name) from exc
        except OSError as exc:
            raise FetchError(f"{name}: cannot prepare {target}: {exc}", repo=name) from exc

        head = self._git.head(target)
        if head != commit:
            raise FetchError(f"{name}: HEAD is {head or 'unset'} after checkout, expected {commit}", repo=name)
        return PinnedRepo(name=name, url=url, path=target, commit=commit, cloned=cloned)

    def ensure_all(self, repos: Iterable[RepoSettings]) -> list[PinnedRepo]:
        self._repos_dir.mkdir(parents=True, exist_ok=True)
        return [self.ensure_repo(r.name, r.url, self._repos_dir / r.name, r.commit) for r in repos]
