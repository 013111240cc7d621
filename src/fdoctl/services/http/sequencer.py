"""Ordered execution of HTTP steps against orchestrated services."""

from __future__ import annotations

import json
import logging
import string
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

import httpx

from fdoctl.services.errors import SequenceError
from fdoctl.services.http.probe import HttpProber, ResponseCheck, RetryPolicy, is_success

_log = logging.getLogger("fdoctl.sequencer")


@dataclass(frozen=True, slots=True)
class ProbeStep:
    """One request of a sequence.

    ``url`` and string ``payload`` are templates rendered with ``str.format``
    against the sequence parameters and previously captured values. Mapping or
    list payloads have their string leaves rendered and are sent as JSON text.
    """

    url: str
    method: str = "GET"
    payload: Any = None
    expect: ResponseCheck = is_success
    retry: RetryPolicy = RetryPolicy()
    name: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout: float = 5.0
    save_as: Optional[str] = None


@dataclass(slots=True)
class SequenceResult:
    responses: list[httpx.Response]
    context: dict[str, Any]


_FORMATTER = string.Formatter()


def render(template: str, values: Mapping[str, Any]) -> str:
    try:
        return _FORMATTER.vformat(template, (), values)
    except KeyError as exc:
        raise KeyError(f"missing template parameter {exc.args[0]!r} in {template!r}") from None


def _render_tree(value: Any, values: Mapping[str, Any]) -> Any:
    if isinstance(value, str):
        return render(value, values)
    if isinstance(value, Mapping):
        return {k: _render_tree(v, values) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_render_tree(v, values) for v in value]
    return value


def render_payload(payload: Any, values: Mapping[str, Any]) -> Optional[str]:
    if payload is None:
        return None
    if isinstance(payload, str):
        return render(payload, values)
    return json.dumps(_render_tree(payload, values), separators=(",", ":"))


class Sequencer:
    def __init__(self, prober: HttpProber) -> None:
        self._prober = prober

    def run_sequence(self, steps: Sequence[ProbeStep], params: Mapping[str, Any] | None = None) -> SequenceResult:
        """Run ``steps`` in order; the first failure aborts with :class:`SequenceError`."""
        context: dict[str, Any] = dict(params or {})
        responses: list[httpx.Response] = []
        for index, step in enumerate(steps):
            label = step.name or f"{step.method} {step.url}"
            try:
                url = render(step.url, context)
                content = render_payload(step.payload, context)
                headers = {k: render(v, context) for k, v in step.headers.items()}
                _log.info("step %d (%s): %s %s", index, label, step.method.upper(), url)
                response = self._prober.probe(
                    url,
                    step.timeout,
                    step.retry,
                    method=step.method,
                    content=content,
                    headers=headers,
                    check=step.expect,
                )
            except Exception as exc:
                _log.error("step %d (%s) failed: %s", index, label, exc)
                raise SequenceError(index, exc, step_name=step.name) from exc
            responses.append(response)
            if step.save_as:
                context[step.save_as] = response.text
        return SequenceResult(responses=responses, context=context)
