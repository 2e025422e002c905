"""
Role resolution, its Redis cache, and user document canonicalization.
"""
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from academy.db.connection import USERS
from academy.models.user import canonicalize, is_privileged, title_case
from academy.services.roles import ROLE_CACHE_PREFIX, invalidate_role, resolve_role

from conftest import insert_user


@pytest.mark.asyncio
async def test_resolve_role_reads_through_the_cache(db, redis_client):
    user = await insert_user(db, privilege="instructor", idp_id="user_teacher")

    role = await resolve_role(db, "user_teacher")
    assert role.id == str(user["_id"])
    assert role.privilege == "instructor"
    assert role.privileged

    # A direct write is not seen until the entry is invalidated
    await db[USERS].update_one({"_id": user["_id"]}, {"$set": {"privilege": "student"}})
    assert (await resolve_role(db, "user_teacher")).privilege == "instructor"

    await invalidate_role("user_teacher")
    assert (await resolve_role(db, "user_teacher")).privilege == "student"


@pytest.mark.asyncio
async def test_cache_entry_expires(db, redis_client):
    await insert_user(db, idp_id="user_ttl")
    await resolve_role(db, "user_ttl")
    ttl = await redis_client.ttl(f"{ROLE_CACHE_PREFIX}user_ttl")
    assert 0 < ttl <= 60


@pytest.mark.asyncio
async def test_unknown_subject_has_no_role(db, redis_client):
    assert await resolve_role(db, "user_unknown") is None
    assert await redis_client.get(f"{ROLE_CACHE_PREFIX}user_unknown") is None


@pytest.mark.asyncio
async def test_invalidation_reports_an_unreachable_cache(redis_client, monkeypatch):
    async def unreachable(*keys):
        raise RedisConnectionError("connection refused")

    assert await invalidate_role("user_any") is True
    monkeypatch.setattr(redis_client, "delete", unreachable)
    assert await invalidate_role("user_any") is False


def test_privileged_tags():
    assert is_privileged("admin") and is_privileged("instructor")
    assert not is_privileged("student") and not is_privileged(None)


def test_canonicalize_names_and_gender():
    fields = canonicalize({"firstName": "  jean-luc ", "lastName": "DE LA CRUZ", "gender": " Male ", "email": "A@B.C"})
    assert fields == {"firstName": "Jean-luc", "lastName": "De La Cruz", "gender": "male", "email": "A@B.C"}


def test_title_case_preserves_inner_spacing():
    assert title_case("mARY   ann") == "Mary   Ann"
