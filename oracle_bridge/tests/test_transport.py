from __future__ import annotations

import httpx
import pytest
import respx

from oracle_bridge.dispatch import OracleTransport, PollingConfig, ServerEntry
from oracle_bridge.errors import MalformedResponse, OracleRejected, TransportError

BASE = "http://oracle.test:3000"


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport(clock: FakeClock):
    with OracleTransport(sleep=clock.sleep, clock=clock) as t:
        yield t


def polling_entry(**cfg) -> ServerEntry:
    return ServerEntry("Shop", BASE, polling=True, polling_config=PollingConfig(**cfg))


@respx.mock
def test_direct_post(transport: OracleTransport) -> None:
    entry = ServerEntry("Shop", BASE, headers={"X-Api-Key": "k"})
    route = respx.post(f"{BASE}/getshirt").mock(return_value=httpx.Response(200, json={"result": 1}))
    assert transport.call(entry, "getshirt", {"delta": 1}) == {"result": 1}
    request = route.calls.last.request
    assert request.headers["X-Api-Key"] == "k"
    assert request.headers["Accept"] == "application/json"


@respx.mock
def test_http_error_without_json(transport: OracleTransport) -> None:
    respx.post(f"{BASE}/getshirt").mock(return_value=httpx.Response(502, text="bad gateway"))
    with pytest.raises(TransportError) as ei:
        transport.call(ServerEntry("Shop", BASE), "getshirt", {})
    assert ei.value.kind == "HTTP"


@respx.mock
def test_success_without_json(transport: OracleTransport) -> None:
    respx.post(f"{BASE}/getshirt").mock(return_value=httpx.Response(200, text="<html>"))
    with pytest.raises(MalformedResponse):
        transport.call(ServerEntry("Shop", BASE), "getshirt", {})


@respx.mock
@pytest.mark.parametrize(
    "exc,kind",
    [(httpx.ConnectError("refused"), "CONNECT"), (httpx.ConnectTimeout("slow"), "TIMEOUT")],
)
def test_connection_failures(transport: OracleTransport, exc: Exception, kind: str) -> None:
    respx.post(f"{BASE}/getshirt").mock(side_effect=exc)
    with pytest.raises(TransportError) as ei:
        transport.call(ServerEntry("Shop", BASE), "getshirt", {})
    assert ei.value.kind == kind
    assert ei.value.url == f"{BASE}/getshirt"


@respx.mock
def test_polling_until_completed(transport: OracleTransport, clock: FakeClock) -> None:
    respx.post(f"{BASE}/getshirt").mock(return_value=httpx.Response(202, json={"jobId": "j-1"}))
    status = respx.get(f"{BASE}/status/j-1").mock(
        side_effect=[
            httpx.Response(200, json={"status": "pending"}),
            httpx.Response(200, json={"status": "running"}),
            httpx.Response(200, json={"status": "completed", "result": {"n": 7}}),
        ]
    )
    out = transport.call(polling_entry(interval_s=0.5), "getshirt", {"delta": 1})
    assert out == {"status": "completed", "result": {"n": 7}}
    assert status.call_count == 3
    assert clock.sleeps == [0.5, 0.5]


@respx.mock
def test_polling_job_failed(transport: OracleTransport) -> None:
    respx.post(f"{BASE}/getshirt").mock(return_value=httpx.Response(200, json={"jobId": 9}))
    respx.get(f"{BASE}/status/9").mock(
        return_value=httpx.Response(200, json={"status": "failed", "error": "no stock"})
    )
    with pytest.raises(OracleRejected) as ei:
        transport.call(polling_entry(), "getshirt", {})
    assert ei.value.payload["error"] == "no stock"


@respx.mock
def test_polling_without_job_id(transport: OracleTransport) -> None:
    respx.post(f"{BASE}/getshirt").mock(return_value=httpx.Response(200, json={"result": 1}))
    with pytest.raises(OracleRejected):
        transport.call(polling_entry(), "getshirt", {})


@respx.mock
def test_polling_max_attempts(transport: OracleTransport) -> None:
    respx.post(f"{BASE}/getshirt").mock(return_value=httpx.Response(200, json={"jobId": "j"}))
    status = respx.get(f"{BASE}/status/j").mock(return_value=httpx.Response(200, json={"status": "pending"}))
    with pytest.raises(TransportError) as ei:
        transport.call(polling_entry(max_attempts=2, interval_s=0), "getshirt", {})
    assert ei.value.kind == "TIMEOUT"
    assert status.call_count == 2


@respx.mock
def test_polling_overall_timeout(transport: OracleTransport, clock: FakeClock) -> None:
    respx.post(f"{BASE}/getshirt").mock(return_value=httpx.Response(200, json={"jobId": "j"}))
    status = respx.get(f"{BASE}/status/j").mock(return_value=httpx.Response(200, json={"status": "pending"}))
    with pytest.raises(TransportError) as ei:
        transport.call(polling_entry(interval_s=10, overall_timeout_s=25), "getshirt", {})
    assert ei.value.kind == "TIMEOUT"
    assert status.call_count == 3
    assert clock.now == 30
