# src/fdoctl/services/http/client.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, MutableMapping, Optional
import ssl

import httpx


class HttpRequestError(RuntimeError):
    """Raised when a request cannot be completed at the transport level."""

    def __init__(self, message: str, *, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class HttpClient:
    """Thin wrapper over :class:`httpx.Client` used by probes and sequences."""

    timeout: float = 5.0
    verify: str | bool | ssl.SSLContext = True
    default_headers: dict[str, str] = field(default_factory=dict)
    # injectable for tests (httpx.MockTransport)
    transport: Optional[httpx.BaseTransport] = None
    _client: Optional[httpx.Client] = field(default=None, init=False, repr=False)

    def _session(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.timeout,
                verify=self.verify,
                transport=self.transport,
                follow_redirects=True,
            )
        return self._client

    def request(
        self,
        method: str,
        url: str,
        *,
        content: str | bytes | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        merged: MutableMapping[str, str] = dict(self.default_headers)
        if headers:
            merged.update({str(k): str(v) for k, v in headers.items()})
        try:
            return self._session().request(
                method.upper(),
                url,
                content=content,
                headers=merged or None,
                timeout=timeout or self.timeout,
            )
        except httpx.RequestError as exc:
            raise HttpRequestError(f"{method.upper()} {url} failed: {exc}") from exc

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
