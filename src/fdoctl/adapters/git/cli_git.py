# src/fdoctl/adapters/git/cli_git.py
from __future__ import annotations
import subprocess
from pathlib import Path
from typing import Optional, Final, Union
from fdoctl.ports.git import GitClient


class GitError(RuntimeError): ...


StrOrPath = Union[str, Path]


def _run_git(args: list[str], cwd: Optional[StrOrPath] = None, timeout: Optional[float] = None) -> str:
    if cwd is not None:
        cwd = str(Path(cwd))
    try:
        p = subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as exc:
        raise GitError("git executable not found") from exc
    except subprocess.TimeoutExpired as exc:
        raise GitError(f"git {' '.join(args)} timed out after {timeout}s") from exc
    if p.returncode != 0:
        raise GitError(f"git {' '.join(args)} failed: {p.stderr.strip()}")
    return p.stdout.strip()


def _repo(dir: StrOrPath) -> list[str]:
    # pin git to this checkout; an incomplete .git must not fall back to an enclosing repository
    d = Path(dir).resolve()
    return ["--git-dir", str(d / ".git"), "--work-tree", str(d)]


class CliGitClient(GitClient):
    def __init__(self, timeout: Optional[float] = 600.0) -> None:
        self._timeout: Final[Optional[float]] = timeout

    def clone(self, url: str, dir: StrOrPath) -> None:
        d = Path(dir)
        d.parent.mkdir(parents=True, exist_ok=True)
        _run_git(["clone", "--no-checkout", url, str(d)], timeout=self._timeout)

    def fetch(self, dir: StrOrPath) -> None:
        _run_git([*_repo(dir), "fetch", "--prune", "--tags", "origin"], cwd=dir, timeout=self._timeout)

    def checkout_detached(self, dir: StrOrPath, commit: str) -> None:
        _run_git([*_repo(dir), "-c", "advice.detachedHead=false", "checkout", "--force", "--detach", commit], cwd=dir, timeout=self._timeout)

    def head(self, dir: StrOrPath) -> Optional[str]:
        """Commit HEAD resolves to, or None when the checkout has no valid HEAD."""
        if not (Path(dir) / ".git").exists():
            return None
        try:
            return _run_git([*_repo(dir), "rev-parse", "--verify", "--quiet", "HEAD^{commit}"], cwd=dir)
        except GitError:
            return None

    def remote_url(self, dir: StrOrPath) -> Optional[str]:
        try:
            return _run_git([*_repo(dir), "remote", "get-url", "origin"], cwd=dir)
        except GitError:
            return None

    def set_remote_url(self, dir: StrOrPath, url: str) -> None:
        _run_git([*_repo(dir), "remote", "set-url", "origin", url], cwd=dir)
