"""
Sliding-window rate limiter: tiers, headers, skips, client addressing.
"""
import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport
from redis.exceptions import ConnectionError as RedisConnectionError
from starlette.requests import Request

from academy.core.config import Settings
from academy.core.redis_client import set_redis
from academy.middleware.rate_limiter import (
    RateLimitTier,
    SlidingWindowRateLimiter,
    build_tiers,
    client_address,
)

API_PATH = lambda path: path.startswith("/api/")  # noqa: E731


def _limited_app(tiers, trust_proxy=True) -> FastAPI:
    app = FastAPI()

    @app.get("/api/ping")
    async def ping():
        return {"pong": True}

    @app.post("/api/sign-up")
    async def sign_up():
        return {"created": True}

    @app.get("/api/health")
    async def health():
        return {"ok": True}

    @app.get("/metrics")
    async def metrics():
        return {"up": 1}

    app.add_middleware(SlidingWindowRateLimiter, tiers=tiers, trust_proxy=trust_proxy)
    return app


@pytest_asyncio.fixture
async def small_client(redis_client):
    tiers = [
        RateLimitTier(name="api", window_seconds=60, max_requests=5, applies=API_PATH),
        RateLimitTier(name="burst", window_seconds=60, max_requests=2,
                      applies=lambda path: path == "/api/sign-up"),
    ]
    transport = ASGITransport(app=_limited_app(tiers))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.mark.asyncio
async def test_api_tier_blocks_after_max_and_sets_headers(small_client):
    for expected_remaining in (4, 3, 2, 1, 0):
        r = await small_client.get("/api/ping")
        assert r.status_code == 200
        assert r.headers["RateLimit-Limit"] == "5"
        assert r.headers["RateLimit-Remaining"] == str(expected_remaining)
        assert r.headers["RateLimit-Policy"] == "5;w=60"

    blocked = await small_client.get("/api/ping")
    assert blocked.status_code == 429
    assert blocked.json() == {"message": "Too many requests, please slow down."}
    assert blocked.headers["RateLimit-Remaining"] == "0"
    assert 0 < int(blocked.headers["Retry-After"]) <= 60


@pytest.mark.asyncio
async def test_burst_tier_is_tighter_on_sensitive_paths(small_client):
    assert (await small_client.post("/api/sign-up")).status_code == 200
    assert (await small_client.post("/api/sign-up")).status_code == 200
    third = await small_client.post("/api/sign-up")
    assert third.status_code == 429
    assert third.headers["RateLimit-Limit"] == "2"

    # The api tier still has room for other paths
    assert (await small_client.get("/api/ping")).status_code == 200


@pytest.mark.asyncio
async def test_health_and_preflight_are_never_counted(small_client):
    for _ in range(10):
        assert (await small_client.get("/api/health")).status_code == 200
        await small_client.options("/api/ping")
    r = await small_client.get("/api/ping")
    assert r.headers["RateLimit-Remaining"] == "4"


@pytest.mark.asyncio
async def test_paths_outside_api_are_not_limited(small_client):
    for _ in range(8):
        r = await small_client.get("/metrics")
        assert r.status_code == 200
        assert "RateLimit-Limit" not in r.headers


@pytest.mark.asyncio
async def test_forwarded_clients_get_separate_buckets(small_client):
    for _ in range(5):
        await small_client.get("/api/ping", headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
    assert (await small_client.get("/api/ping", headers={"X-Forwarded-For": "203.0.113.7"})).status_code == 429
    assert (await small_client.get("/api/ping", headers={"X-Forwarded-For": "198.51.100.2"})).status_code == 200


def _request(headers: dict[str, str], peer=("10.0.0.1", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/ping",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": peer,
    }
    return Request(scope)


def test_client_address_uses_leftmost_forwarded_entry_when_trusted():
    req = _request({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
    assert client_address(req, trust_proxy=True) == "203.0.113.7"
    assert client_address(req, trust_proxy=False) == "10.0.0.1"
    assert client_address(_request({}), trust_proxy=True) == "10.0.0.1"


def test_build_tiers_from_settings():
    settings = Settings(
        RATE_LIMIT_WINDOW_MS="120000",
        RATE_LIMIT_API_MAX="not-a-number",
        RATE_LIMIT_BURST_WINDOW_MS=-5,
        RATE_LIMIT_BURST_MAX=7,
        RATE_LIMIT_BURST_PATHS="/api/sign-up, /api/login",
    )
    api, burst = build_tiers(settings)
    assert (api.window_seconds, api.max_requests) == (120.0, 300)
    assert (burst.window_seconds, burst.max_requests) == (60.0, 7)
    assert api.applies("/api/users") and not api.applies("/metrics")
    assert burst.applies("/api/login/") and not burst.applies("/api/users")


@pytest.mark.asyncio
async def test_limiter_fails_open_when_redis_is_down(redis_client):
    class BrokenPipeline:
        def __getattr__(self, name):
            return lambda *args, **kwargs: self

        async def execute(self):
            raise RedisConnectionError("connection refused")

    class BrokenRedis:
        def pipeline(self):
            return BrokenPipeline()

    set_redis(BrokenRedis())
    tiers = [RateLimitTier(name="api", window_seconds=60, max_requests=1, applies=API_PATH)]
    transport = ASGITransport(app=_limited_app(tiers))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        for _ in range(3):
            r = await c.get("/api/ping")
            assert r.status_code == 200
            assert "RateLimit-Limit" not in r.headers


@pytest.mark.asyncio
async def test_full_app_returns_429_on_request_301(client):
    for _ in range(300):
        r = await client.get("/api/users")
        assert r.status_code == 401
    r = await client.get("/api/users")
    assert r.status_code == 429
    assert r.headers["RateLimit-Limit"] == "300"
    assert r.headers["RateLimit-Remaining"] == "0"
