"""Error classes raised by the provisioning and orchestration driver."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class FdoError(RuntimeError):
    """Base error for every driver operation."""


class ConfigError(FdoError):
    """Raised when settings are missing or malformed."""


class FixtureIOError(FdoError):
    """Raised when the fixture root cannot be created or written."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        self.path = path
        super().__init__(message)


class ProvisioningError(FdoError):
    """Raised when the crypto engine fails to produce key or certificate material."""

    def __init__(self, message: str, *, role: str | None = None, returncode: int | None = None) -> None:
        self.role = role
        self.returncode = returncode
        super().__init__(message)


class FetchError(FdoError):
    """Raised for source control failures (clone, fetch, checkout, verification)."""

    def __init__(self, message: str, *, repo: str | None = None) -> None:
        self.repo = repo
        super().__init__(message)


class ProcessError(FdoError):
    """Raised when a managed process cannot be spawned or stopped."""

    def __init__(self, message: str, *, name: str | None = None) -> None:
        self.name = name
        super().__init__(message)


class ProbeError(FdoError):
    """Raised when an HTTP probe exhausts its retry budget."""

    def __init__(self, url: str, *, attempts: int, last_status: Optional[int] = None, reason: str | None = None) -> None:
        self.url = url
        self.attempts = attempts
        self.last_status = last_status
        self.reason = reason
        message = f"{url} not ready after {attempts} attempt(s)"
        if last_status is not None:
            message += f": last status {last_status}"
        elif reason:
            message += f": {reason}"
        super().__init__(message)


class SequenceError(FdoError):
    """Wraps the first failing step of a probe sequence."""

    def __init__(self, failed_step_index: int, cause: BaseException, *, step_name: str | None = None) -> None:
        self.failed_step_index = failed_step_index
        self.step_name = step_name
        self.cause = cause
        label = step_name or f"#{failed_step_index}"
        super().__init__(f"step {failed_step_index} ({label}) failed: {cause}")


class StepFailed(FdoError):
    """Raised by the bring-up pipeline; names the step that halted it."""

    def __init__(self, step: str, cause: BaseException) -> None:
        self.step = step
        self.cause = cause
        super().__init__(f"{step}: {cause}")


__all__ = [
    "FdoError",
    "ConfigError",
    "FixtureIOError",
    "ProvisioningError",
    "FetchError",
    "ProcessError",
    "ProbeError",
    "SequenceError",
    "StepFailed",
]
