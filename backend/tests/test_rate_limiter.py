"""
Per-IP rate limiting middleware for admin and webhook routes
"""

from types import SimpleNamespace

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from eventswap.infrastructure.settings import Settings
from eventswap.utils.rate_limiter import RateLimiter, RateLimitMiddleware


@pytest.fixture
def limited_client(fake_redis, monkeypatch):
    settings = Settings(
        ENV="test",
        JWT_SECRET="x" * 40,
        RATE_LIMIT_ENABLED=True,
        RL_ADMIN_PER_MIN=2,
        RL_WEBHOOK_PER_MIN=1,
    )
    monkeypatch.setattr("eventswap.utils.rate_limiter.get_settings", lambda: settings)

    app = FastAPI()

    @app.get("/api/admin/ping")
    async def admin_ping():
        return {"ok": True}

    @app.post("/api/webhooks/payments")
    async def webhook():
        return {"ok": True}

    @app.get("/api/offers")
    async def offers():
        return {"ok": True}

    app.add_middleware(RateLimitMiddleware, redis_client=fake_redis)
    return TestClient(app)


def test_admin_limit_per_ip(limited_client):
    first = limited_client.get("/api/admin/ping", headers={"X-Forwarded-For": "10.0.0.1"})
    assert first.status_code == 200
    assert first.headers["X-RateLimit-Limit"] == "2"
    assert first.headers["X-RateLimit-Remaining"] == "1"

    assert limited_client.get("/api/admin/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 200

    blocked = limited_client.get("/api/admin/ping", headers={"X-Forwarded-For": "10.0.0.1"})
    assert blocked.status_code == 429
    body = blocked.json()
    assert body["code"] == "RATE_LIMITED"
    assert body["details"]["endpoint_group"] == "admin"
    assert blocked.headers["X-RateLimit-Remaining"] == "0"

    other_ip = limited_client.get("/api/admin/ping", headers={"X-Forwarded-For": "10.0.0.2"})
    assert other_ip.status_code == 200


def test_webhook_group_counted_separately(limited_client):
    headers = {"X-Real-IP": "192.168.1.9"}
    assert limited_client.get("/api/admin/ping", headers=headers).status_code == 200
    assert limited_client.post("/api/webhooks/payments", headers=headers).status_code == 200
    assert limited_client.post("/api/webhooks/payments", headers=headers).status_code == 429


def test_unlisted_routes_are_not_limited(limited_client):
    for _ in range(5):
        response = limited_client.get("/api/offers")
        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers


def test_disabled_limiter_passes_everything(fake_redis, monkeypatch):
    settings = Settings(ENV="test", JWT_SECRET="x" * 40, RATE_LIMIT_ENABLED=False, RL_ADMIN_PER_MIN=1)
    monkeypatch.setattr("eventswap.utils.rate_limiter.get_settings", lambda: settings)

    app = FastAPI()

    @app.get("/api/admin/ping")
    async def admin_ping():
        return {"ok": True}

    app.add_middleware(RateLimitMiddleware, redis_client=fake_redis)
    client = TestClient(app)

    assert [client.get("/api/admin/ping").status_code for _ in range(3)] == [200, 200, 200]
    assert fake_redis.sets == {}


def test_sliding_window_frees_slots(fake_redis, monkeypatch):
    limiter = RateLimiter(redis_client=fake_redis, limit=1, window_seconds=60)
    clock = iter([1000.0, 1010.0, 1061.0])
    monkeypatch.setattr("eventswap.utils.rate_limiter.time", SimpleNamespace(time=lambda: next(clock)))

    assert limiter.check_rate_limit("admin", "ip")[0] is True
    allowed, remaining, limit, reset_time = limiter.check_rate_limit("admin", "ip")
    assert (allowed, remaining, limit, reset_time) == (False, 0, 1, 1060)
    assert limiter.check_rate_limit("admin", "ip")[0] is True
