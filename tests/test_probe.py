from __future__ import annotations

import httpx
import pytest

from conftest import Recorder
from fdoctl.services.errors import ProbeError
from fdoctl.services.http.client import HttpClient, HttpRequestError
from fdoctl.services.http.probe import HttpProber, RetryPolicy

URL = "http://localhost:8041/health"


class _Sleeps(list):
    def __call__(self, seconds: float) -> None:
        self.append(seconds)


def _prober(handler, sleeps=None) -> HttpProber:
    client = HttpClient(transport=httpx.MockTransport(handler))
    return HttpProber(client, sleep=sleeps if sleeps is not None else _Sleeps())


def test_first_success_returns_response():
    rec = Recorder({("GET", "/health"): 200})

    response = _prober(rec).probe(URL, 1.0, RetryPolicy.fixed(3, 0.5))

    assert response.status_code == 200
    assert rec.seen() == [("GET", "/health")]


def test_fixed_policy_exhaustion_reports_attempts_and_sleeps():
    rec = Recorder({("GET", "/health"): 503})
    sleeps = _Sleeps()

    with pytest.raises(ProbeError) as err:
        _prober(rec, sleeps).probe(URL, 1.0, RetryPolicy.fixed(3, 0.25))

    assert err.value.attempts == 3
    assert err.value.last_status == 503
    assert err.value.url == URL
    assert sleeps == [0.25, 0.25]
    assert len(rec.requests) == 3


def test_recovers_after_transient_failures():
    statuses = iter([500, 502, 204])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(next(statuses))

    sleeps = _Sleeps()
    response = _prober(handler, sleeps).probe(URL, 1.0, RetryPolicy.fixed(5, 0.1))

    assert response.status_code == 204
    assert sleeps == [0.1, 0.1]


def test_exponential_backoff_is_capped():
    policy = RetryPolicy.exponential(6, delay=0.5, factor=2.0, max_delay=3.0)

    assert list(policy.delays()) == [0.5, 1.0, 2.0, 3.0, 3.0]


def test_single_attempt_has_no_delay():
    assert list(RetryPolicy().delays()) == []


@pytest.mark.parametrize("kwargs", [{"attempts": 0}, {"attempts": 2, "backoff": "linear"}])
def test_invalid_policy_is_rejected(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_connection_errors_count_as_attempts():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProbeError) as err:
        _prober(handler).probe(URL, 1.0, RetryPolicy.fixed(2, 0.0))

    assert err.value.attempts == 2
    assert err.value.last_status is None
    assert "connection refused" in str(err.value)


def test_custom_check_and_method():
    rec = Recorder({("POST", "/health"): 404})

    response = _prober(rec).probe(
        URL,
        1.0,
        RetryPolicy(),
        method="post",
        content="ping",
        check=lambda r: r.status_code == 404,
    )

    assert response.status_code == 404
    assert rec.requests[0].content == b"ping"


def test_abort_stops_before_next_attempt():
    rec = Recorder({("GET", "/health"): 503})
    calls = []

    def abort_if():
        calls.append(1)
        return "service exited" if len(calls) > 1 else None

    with pytest.raises(ProbeError) as err:
        _prober(rec).probe(URL, 1.0, RetryPolicy.fixed(10, 0.0), abort_if=abort_if)

    assert err.value.attempts == 1
    assert err.value.reason == "service exited"
    assert len(rec.requests) == 1


def test_policy_from_settings():
    from fdoctl.services.settings import RetrySettings

    policy = RetryPolicy.from_settings(RetrySettings(attempts=4, delay=0.2, backoff="exponential", factor=3.0, max_delay=1.0))

    assert list(policy.delays()) == [0.2, pytest.approx(0.6), 1.0]


def test_http_client_wraps_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with HttpClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(HttpRequestError) as err:
            client.request("get", URL)
    assert "GET" in str(err.value)
