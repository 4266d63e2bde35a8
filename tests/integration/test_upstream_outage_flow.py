"""
Integration tests for upstream outage and recovery through the gateway.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from service_avatar_gateway.app.main import GatewayService
from shared.circuit_breaker import CircuitBreaker
from shared.config import get_config


class SwitchableUpstream:
    """Upstream that can be taken down and brought back."""

    def __init__(self):
        self.available = True
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if not self.available:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"code": "0", "data": {"concurrentNumber": 0}})


class FakeClock:
    def __init__(self):
        self.now = 5_000.0

    def __call__(self) -> float:
        return self.now


async def no_sleep(delay):
    return None


class TestUpstreamOutageFlow:
    """Breaker opens after repeated outages and closes after recovery."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def upstream(self):
        return SwitchableUpstream()

    @pytest.fixture
    def service(self, clock, upstream):
        config = get_config(
            app_env="development",
            duix_app_id="app-123",
            duix_app_key="secret-key",
            duix_api_url="https://api.duix.test",
            enable_rate_limiting=False,
            _env_file=None,
        )
        return GatewayService(
            config,
            transport=httpx.MockTransport(upstream),
            sleep=no_sleep,
            circuit_breaker=CircuitBreaker(name="duix_api", clock=clock),
        )

    @pytest.fixture
    def client(self, service):
        return TestClient(service.app)

    def ask(self, client):
        response = client.post("/api/test-latency", json={"question": "Are you there?", "token": "client-token"})
        assert response.status_code == 200
        return response.json()["response"]

    def test_outage_and_recovery(self, client, clock, upstream):
        assert self.ask(client)["fallback_mode"] is False

        upstream.available = False
        for _ in range(5):
            reply = self.ask(client)
            assert reply["fallback_mode"] is True
            assert reply["error_info"]["last_error"] == "ECONNREFUSED"
        assert reply["circuit_breaker_state"] == "OPEN"
        calls_before = upstream.calls

        # Open breaker answers without touching the upstream
        reply = self.ask(client)
        assert reply["fallback_mode"] is True
        assert upstream.calls == calls_before

        status = client.get("/api/status").json()
        assert status["circuit_breaker"]["state"] == "OPEN"

        upstream.available = True
        clock.now += 61.0
        reply = self.ask(client)

        assert reply["fallback_mode"] is False
        assert reply["circuit_breaker_state"] == "CLOSED"

    def test_session_routes_degrade_while_open(self, client, upstream):
        upstream.available = False
        for _ in range(5):
            self.ask(client)

        response = client.post("/api/duix/stop-session", json={"uuid": "s-1", "token": "client-token"})

        assert response.status_code == 503
        assert response.json()["circuit_breaker_state"] == "OPEN"

    def test_metrics_reflect_outage(self, client, service, upstream):
        upstream.available = False
        for _ in range(5):
            self.ask(client)

        body = client.get("/metrics").text

        assert 'circuit_breaker_state{name="duix_api"} 2.0' in body
        assert "upstream_fallbacks_total" in body
