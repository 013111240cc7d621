"""HTTP readiness probing with a caller-supplied retry policy."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

import httpx

from fdoctl.services.errors import ProbeError
from fdoctl.services.http.client import HttpClient, HttpRequestError
from fdoctl.services.settings import RetrySettings

_log = logging.getLogger("fdoctl.probe")

ResponseCheck = Callable[[httpx.Response], bool]


def is_success(response: httpx.Response) -> bool:
    return 200 <= response.status_code < 300


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    attempts: int = 1
    delay: float = 0.0
    backoff: str = "fixed"
    factor: float = 2.0
    max_delay: float = 30.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.backoff not in ("fixed", "exponential"):
            raise ValueError(f"unknown backoff '{self.backoff}'")

    @classmethod
    def fixed(cls, attempts: int, delay: float = 1.0) -> "RetryPolicy":
        return cls(attempts=attempts, delay=delay, backoff="fixed")

    @classmethod
    def exponential(cls, attempts: int, delay: float = 0.5, factor: float = 2.0, max_delay: float = 30.0) -> "RetryPolicy":
        return cls(attempts=attempts, delay=delay, backoff="exponential", factor=factor, max_delay=max_delay)

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryPolicy":
        return cls(
            attempts=settings.attempts,
            delay=settings.delay,
            backoff=settings.backoff,
            factor=settings.factor,
            max_delay=settings.max_delay,
        )

    def delays(self) -> Iterator[float]:
        """Pause before each retry; yields ``attempts - 1`` values."""
        current = self.delay
        for _ in range(self.attempts - 1):
            yield min(current, self.max_delay)
            if self.backoff == "exponential":
                current *= self.factor


class HttpProber:
    def __init__(self, client: HttpClient, *, sleep: Callable[[float], None] = time.sleep) -> None:
        self._client = client
        self._sleep = sleep

    def probe(
        self,
        url: str,
        timeout: float = 5.0,
        policy: RetryPolicy = RetryPolicy(),
        *,
        method: str = "GET",
        content: str | bytes | None = None,
        headers: dict[str, str] | None = None,
        check: ResponseCheck = is_success,
        abort_if: Optional[Callable[[], Optional[str]]] = None,
    ) -> httpx.Response:
        """Request ``url`` until ``check`` accepts the response or the policy is exhausted.

        ``abort_if`` is consulted before every attempt; a non-empty reason stops
        the loop early (e.g. the probed process has exited).
        Returns the accepted response, raises :class:`ProbeError` otherwise.
        """
        last_status: Optional[int] = None
        reason: Optional[str] = None
        delays = policy.delays()
        attempts = 0
        while True:
            if abort_if is not None:
                abort_reason = abort_if()
                if abort_reason:
                    raise ProbeError(url, attempts=attempts, last_status=last_status, reason=abort_reason)
            attempts += 1
            try:
                response = self._client.request(method, url, content=content, headers=headers, timeout=timeout)
            except HttpRequestError as exc:
                last_status, reason = None, str(exc)
                _log.debug("probe %s attempt %d: %s", url, attempts, exc)
            else:
                last_status = response.status_code
                if check(response):
                    _log.debug("probe %s ok after %d attempt(s)", url, attempts)
                    return response
                reason = f"unexpected status {response.status_code}"
                _log.debug("probe %s attempt %d: status %d", url, attempts, response.status_code)

            pause = next(delays, None)
            if pause is None:
                break
            if pause > 0:
                self._sleep(pause)

        _log.warning("probe %s failed after %d attempt(s)", url, attempts)
        raise ProbeError(url, attempts=attempts, last_status=last_status, reason=reason)
