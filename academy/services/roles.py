"""
Academy API — App-level role lookup for an IdP subject

Results are cached in Redis for ROLE_CACHE_TTL_SECONDS; callers that write a
user's privilege (or delete the user) must call invalidate_role().
"""
import json
import logging
from dataclasses import dataclass

from motor.motor_asyncio import AsyncIOMotorDatabase
from redis.exceptions import RedisError

from academy.core.config import get_settings
from academy.core.redis_client import ROLE_NAMESPACE, get_redis, namespaced
from academy.models.user import is_privileged
from academy.services.user_store import find_by_subject

settings = get_settings()
logger = logging.getLogger(__name__)

ROLE_CACHE_PREFIX = f"{ROLE_NAMESPACE}:"


@dataclass(frozen=True)
class Role:
    id: str
    privilege: str

    @property
    def privileged(self) -> bool:
        return is_privileged(self.privilege)


async def _cached_role(subject_id: str) -> Role | None:
    try:
        raw = await get_redis().get(namespaced(ROLE_NAMESPACE, subject_id))
    except RedisError as exc:
        logger.warning("Role cache read failed for %s: %s", subject_id, exc)
        return None
    if not raw:
        return None
    data = json.loads(raw)
    return Role(id=data["id"], privilege=data["privilege"])


async def _cache_role(subject_id: str, role: Role) -> None:
    try:
        await get_redis().setex(
            namespaced(ROLE_NAMESPACE, subject_id),
            settings.ROLE_CACHE_TTL_SECONDS,
            json.dumps({"id": role.id, "privilege": role.privilege}),
        )
    except RedisError as exc:
        logger.warning("Role cache write failed for %s: %s", subject_id, exc)


async def resolve_role(db: AsyncIOMotorDatabase, subject_id: str) -> Role | None:
    """The caller's user id and privilege, or None when no user has this idpId."""
    use_cache = settings.ROLE_CACHE_TTL_SECONDS > 0
    if use_cache:
        cached = await _cached_role(subject_id)
        if cached is not None:
            return cached

    me = await find_by_subject(db, subject_id, {"privilege": 1})
    if me is None:
        return None
    role = Role(id=str(me["_id"]), privilege=me.get("privilege") or "")
    if use_cache:
        await _cache_role(subject_id, role)
    return role


async def invalidate_role(subject_id: str) -> bool:
    """
    Drop the cached role. Returns False when Redis could not be reached; the
    entry then lives until its TTL. Writers call this before and after the
    write it covers.
    """
    try:
        await get_redis().delete(namespaced(ROLE_NAMESPACE, subject_id))
    except RedisError as exc:
        logger.warning("Role cache invalidation failed for %s: %s", subject_id, exc)
        return False
    return True
