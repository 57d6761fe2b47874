"""Tests for the path-scoped rate limit middleware."""

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from starlette.middleware.base import BaseHTTPMiddleware

from agentgate.app.middleware.rate_limit import (
    LimiterRegistry,
    RateLimitConfig,
    RateLimiter,
    RateLimitMiddleware,
)


class FakeAuthMiddleware(BaseHTTPMiddleware):
    """Stands in for an auth layer that identifies the caller."""

    async def dispatch(self, request: Request, call_next):
        user = request.headers.get("x-test-user")
        if user:
            request.state.user_id = user
        return await call_next(request)


def build_app(clock, limit=2, **middleware_kwargs):
    app = FastAPI()
    app.state.limiters = LimiterRegistry({
        "api": RateLimiter(
            RateLimitConfig(interval_ms=60_000, unique_token_per_interval=limit),
            clock=clock,
        ),
    })
    app.add_middleware(RateLimitMiddleware, **middleware_kwargs)
    app.add_middleware(FakeAuthMiddleware)

    @app.get("/api/agents")
    async def agents():
        return {"agents": []}

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/widget/loader.js")
    async def loader():
        return {"script": True}

    @app.get("/dashboard")
    async def dashboard():
        return {"page": "dashboard"}

    return app


@pytest.fixture
def client(clock):
    return TestClient(build_app(clock))


class TestRateLimitMiddleware:
    """Tests for RateLimitMiddleware."""

    def test_success_adds_rate_limit_headers(self, client, clock):
        resp = client.get("/api/agents", headers={"x-forwarded-for": "10.0.0.1"})

        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Limit"] == "2"
        assert resp.headers["X-RateLimit-Remaining"] == "1"
        assert resp.headers["X-RateLimit-Reset"] == str(int(clock.now) + 60)

    def test_admitted_api_responses_carry_security_headers(self, client):
        resp = client.get("/api/agents")

        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert resp.headers["X-XSS-Protection"] == "1; mode=block"

    def test_unguarded_paths_get_no_security_headers(self, client):
        resp = client.get("/dashboard")
        assert "X-Frame-Options" not in resp.headers

    def test_rejects_after_quota(self, client):
        headers = {"x-forwarded-for": "10.0.0.1"}
        client.get("/api/agents", headers=headers)
        client.get("/api/agents", headers=headers)

        resp = client.get("/api/agents", headers=headers)

        assert resp.status_code == 429
        assert resp.json()["error"] == "Too many requests"
        assert resp.headers["Retry-After"] == "60"
        assert resp.headers["X-RateLimit-Remaining"] == "0"

    def test_window_expiry_readmits(self, client, clock):
        headers = {"x-forwarded-for": "10.0.0.1"}
        for _ in range(3):
            client.get("/api/agents", headers=headers)

        clock.advance(60)

        resp = client.get("/api/agents", headers=headers)
        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Remaining"] == "1"

    def test_distinct_ips_have_separate_quotas(self, client):
        for _ in range(3):
            client.get("/api/agents", headers={"x-forwarded-for": "10.0.0.1"})

        resp = client.get("/api/agents", headers={"x-forwarded-for": "10.0.0.2"})
        assert resp.status_code == 200

    def test_user_id_from_request_state_isolates_shared_ip(self, client):
        headers = {"x-forwarded-for": "192.0.2.10"}
        for _ in range(2):
            client.get("/api/agents", headers={**headers, "x-test-user": "user-1"})

        blocked = client.get("/api/agents", headers={**headers, "x-test-user": "user-1"})
        other = client.get("/api/agents", headers={**headers, "x-test-user": "user-2"})

        assert blocked.status_code == 429
        assert other.status_code == 200

    def test_exempt_path_not_limited(self, client):
        for _ in range(5):
            resp = client.get("/api/health")
            assert resp.status_code == 200
            assert "X-RateLimit-Limit" not in resp.headers

    def test_static_assets_not_limited(self, client):
        for _ in range(5):
            assert client.get("/api/widget/loader.js").status_code == 200

    def test_paths_outside_prefix_not_limited(self, client):
        for _ in range(5):
            resp = client.get("/dashboard")
            assert resp.status_code == 200
            assert "X-RateLimit-Limit" not in resp.headers

    def test_explicit_limiter_overrides_registry(self, clock):
        limiter = RateLimiter(
            RateLimitConfig(interval_ms=60_000, unique_token_per_interval=1),
            clock=clock,
        )
        client = TestClient(build_app(clock, limit=100, limiter=limiter))

        assert client.get("/api/agents").status_code == 200
        assert client.get("/api/agents").status_code == 429

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/api/chat", True),
            ("/api/agents/abc/knowledge", True),
            ("/api/health", False),
            ("/api/health/", False),
            ("/api/v1/widget.js", False),
            ("/dashboard/agents", False),
        ],
    )
    def test_applies_to(self, path, expected):
        middleware = RateLimitMiddleware(FastAPI())
        assert middleware.applies_to(path) is expected
