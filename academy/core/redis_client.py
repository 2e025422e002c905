"""
Academy API — Shared Redis client

Holds two key families, both read on the request path and both failing open:
sliding-window sorted sets under "ratelimit:" and cached roles under "role:".
Every command is bounded by REDIS_COMMAND_TIMEOUT so an unreachable server
costs a request at most that long before the caller falls back.
"""
import logging

import redis.asyncio as aioredis

from academy.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

RATE_LIMIT_NAMESPACE = "ratelimit"
ROLE_NAMESPACE = "role"

_shared: aioredis.Redis | None = None


def namespaced(namespace: str, *parts: str) -> str:
    """Join a key family and its parts: namespaced("role", "user_1") -> "role:user_1"."""
    return ":".join((namespace, *parts))


def _open_client() -> aioredis.Redis:
    logger.info("Opening Redis client for %s:%s/%s", settings.REDIS_HOST, settings.REDIS_PORT, settings.REDIS_DB)
    return aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=settings.REDIS_COMMAND_TIMEOUT,
        socket_timeout=settings.REDIS_COMMAND_TIMEOUT,
    )


def get_redis() -> aioredis.Redis:
    """The process-wide client, opened lazily on first use."""
    global _shared
    if _shared is None:
        _shared = _open_client()
    return _shared


def set_redis(client: aioredis.Redis | None) -> None:
    """Install a client (an in-memory server in tests) or clear the slot."""
    global _shared
    _shared = client


async def close_redis() -> None:
    global _shared
    client, _shared = _shared, None
    if client is not None:
        await client.aclose()
