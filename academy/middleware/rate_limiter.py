"""
Academy API — Sliding window rate limiter middleware (Redis-backed)

Two tiers keyed by client address:
  api   : every /api path, RATE_LIMIT_API_MAX per RATE_LIMIT_WINDOW_MS
  burst : sensitive paths (sign-up), RATE_LIMIT_BURST_MAX per RATE_LIMIT_BURST_WINDOW_MS
Uses sorted sets (ZADD/ZREMRANGEBYSCORE/ZCARD) for a true sliding window.
CORS preflights and the health check are never counted.
"""
import logging
import math
import time
import uuid
from dataclasses import dataclass
from typing import Callable

from fastapi import Request, Response
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware

from academy.core.config import Settings
from academy.core.errors import error_response
from academy.core.redis_client import RATE_LIMIT_NAMESPACE, get_redis, namespaced

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests, please slow down."
HEALTH_PATH = "/api/health"


@dataclass(frozen=True)
class RateLimitTier:
    name: str
    window_seconds: float
    max_requests: int
    applies: Callable[[str], bool]


@dataclass(frozen=True)
class WindowState:
    limit: int
    remaining: int
    reset_seconds: int
    exceeded: bool
    window_seconds: float

    def headers(self) -> dict[str, str]:
        return {
            "RateLimit-Policy": f"{self.limit};w={int(self.window_seconds)}",
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_seconds),
        }


def build_tiers(settings: Settings) -> list[RateLimitTier]:
    burst_paths = {p.rstrip("/") for p in settings.burst_paths}
    return [
        RateLimitTier(
            name="api",
            window_seconds=settings.RATE_LIMIT_WINDOW_MS / 1000.0,
            max_requests=settings.RATE_LIMIT_API_MAX,
            applies=lambda path: path == "/api" or path.startswith("/api/"),
        ),
        RateLimitTier(
            name="burst",
            window_seconds=settings.RATE_LIMIT_BURST_WINDOW_MS / 1000.0,
            max_requests=settings.RATE_LIMIT_BURST_MAX,
            applies=lambda path: path.rstrip("/") in burst_paths,
        ),
    ]


def client_address(request: Request, trust_proxy: bool) -> str:
    """
    Behind a trusted proxy the client is the leftmost X-Forwarded-For entry;
    the proxy's own address would put every caller in one bucket. Without the
    header the request did not come through the proxy and the peer is the client.
    """
    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


def skip_request(request: Request) -> bool:
    if request.method == "OPTIONS":
        return True
    path = request.url.path.rstrip("/")
    return path == HEALTH_PATH


class SlidingWindowRateLimiter(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        tiers: list[RateLimitTier],
        trust_proxy: bool = True,
        skip: Callable[[Request], bool] = skip_request,
    ):
        super().__init__(app)
        self.tiers = tiers
        self.trust_proxy = trust_proxy
        self.skip = skip

    async def _hit(self, tier: RateLimitTier, client: str) -> WindowState | None:
        key = namespaced(RATE_LIMIT_NAMESPACE, tier.name, client)
        now = time.time()
        window_start = now - tier.window_seconds

        try:
            pipe = get_redis().pipeline()
            # Remove entries outside the window
            pipe.zremrangebyscore(key, "-inf", window_start)
            # Count current hits in window
            pipe.zcard(key)
            # Add this hit
            pipe.zadd(key, {f"{now}:{uuid.uuid4().hex}": now})
            # Oldest hit decides when the window frees up
            pipe.zrange(key, 0, 0, withscores=True)
            # Set TTL
            pipe.expire(key, int(math.ceil(tier.window_seconds)) + 1)
            results = await pipe.execute()
        except RedisError as exc:
            logger.warning("Rate limiter backend unavailable, letting request through: %s", exc)
            return None

        hit_count = results[1]  # count before this hit
        oldest = results[3]
        oldest_score = oldest[0][1] if oldest else now
        reset = max(0, math.ceil(oldest_score + tier.window_seconds - now))
        return WindowState(
            limit=tier.max_requests,
            remaining=max(0, tier.max_requests - hit_count - 1),
            reset_seconds=reset,
            exceeded=hit_count >= tier.max_requests,
            window_seconds=tier.window_seconds,
        )

    async def dispatch(self, request: Request, call_next) -> Response:
        if self.skip(request):
            return await call_next(request)

        path = request.url.path
        applicable = [tier for tier in self.tiers if tier.applies(path)]
        if not applicable:
            return await call_next(request)

        client = client_address(request, self.trust_proxy)
        states = []
        for tier in applicable:
            state = await self._hit(tier, client)
            if state is not None:
                states.append(state)

        blocked = next((state for state in states if state.exceeded), None)
        if blocked is not None:
            headers = blocked.headers()
            headers["Retry-After"] = str(blocked.reset_seconds)
            return error_response(429, RATE_LIMIT_MESSAGE, headers=headers)

        response = await call_next(request)
        if states:
            tightest = min(states, key=lambda state: state.remaining)
            response.headers.update(tightest.headers())
        return response
