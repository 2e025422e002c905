"""
Academy API — User store (collection: users)

Names are title-cased and gender lowercased on every write; email and idpId
are unique (checked up front, enforced by unique indexes).
"""
import asyncio
from typing import Any

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from academy.core.pagination import PageRequest, text_search
from academy.db.connection import USERS
from academy.models.user import DEFAULT_PRIVILEGE, canonicalize, new_user_document


SEARCH_FIELDS = ["firstName", "lastName", "email"]
NAME_ORDER = [("lastName", ASCENDING), ("firstName", ASCENDING), ("_id", ASCENDING)]

# Lookup keys accepted by GET /api/user
LOOKUP_FIELDS = ("_id", "email", "whatsapp")


class DuplicateUserError(Exception):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Duplicate value for {field}")


def _duplicate_field(exc: DuplicateKeyError) -> str:
    key_pattern = (exc.details or {}).get("keyPattern") or {}
    return "idpId" if "idpId" in key_pattern else "email"


async def create_user(db: AsyncIOMotorDatabase, fields: dict[str, Any]) -> dict[str, Any]:
    users = db[USERS]
    if await users.find_one({"email": fields["email"]}, {"_id": 1}):
        raise DuplicateUserError("email")
    if await users.find_one({"idpId": fields["idpId"]}, {"_id": 1}):
        raise DuplicateUserError("idpId")

    doc = new_user_document(
        first_name=fields["firstName"],
        last_name=fields["lastName"],
        email=fields["email"],
        idp_id=fields["idpId"],
        whatsapp=fields.get("whatsapp"),
        gender=fields.get("gender"),
        privilege=DEFAULT_PRIVILEGE,
    )
    try:
        result = await users.insert_one(doc)
    except DuplicateKeyError as exc:
        # Lost a race with a concurrent sign-up for the same address
        raise DuplicateUserError(_duplicate_field(exc)) from exc
    doc["_id"] = result.inserted_id
    return doc


async def get_user(db: AsyncIOMotorDatabase, user_id: ObjectId) -> dict[str, Any] | None:
    return await db[USERS].find_one({"_id": user_id})


async def find_user(db: AsyncIOMotorDatabase, filters: dict[str, Any]) -> dict[str, Any] | None:
    if not filters:
        raise ValueError("At least one lookup field is required")
    return await db[USERS].find_one(filters)


async def find_by_subject(
    db: AsyncIOMotorDatabase, subject_id: str, projection: dict[str, int] | None = None
) -> dict[str, Any] | None:
    return await db[USERS].find_one({"idpId": subject_id}, projection)


def build_list_filter(privilege: str | None = None, q: str | None = None) -> dict[str, Any]:
    query: dict[str, Any] = {}
    if privilege:
        query["privilege"] = privilege
    search = text_search(q, SEARCH_FIELDS)
    if search:
        query.update(search)
    return query


async def list_users(
    db: AsyncIOMotorDatabase,
    *,
    privilege: str | None = None,
    q: str | None = None,
    page: PageRequest | None = None,
) -> list[dict[str, Any]] | tuple[list[dict[str, Any]], int]:
    """
    Users ordered by (lastName, firstName).
    With a page request returns (items, total), otherwise the full list.
    """
    users = db[USERS]
    query = build_list_filter(privilege, q)
    cursor = users.find(query).sort(NAME_ORDER)
    if page is None:
        return await cursor.to_list(length=None)

    items, total = await asyncio.gather(
        cursor.skip(page.skip).limit(page.limit).to_list(length=None),
        users.count_documents(query),
    )
    return items, total


async def update_user(
    db: AsyncIOMotorDatabase, user_id: ObjectId, updates: dict[str, Any]
) -> dict[str, Any] | None:
    """Apply canonicalized updates and return the stored record (None if it vanished)."""
    changes = canonicalize(dict(updates))
    if not changes:
        return await get_user(db, user_id)
    try:
        return await db[USERS].find_one_and_update(
            {"_id": user_id},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError as exc:
        raise DuplicateUserError(_duplicate_field(exc)) from exc


async def email_in_use(db: AsyncIOMotorDatabase, email: str, exclude_id: ObjectId) -> bool:
    return await db[USERS].find_one({"email": email, "_id": {"$ne": exclude_id}}, {"_id": 1}) is not None


async def delete_user_record(db: AsyncIOMotorDatabase, user_id: ObjectId) -> bool:
    result = await db[USERS].delete_one({"_id": user_id})
    return result.deleted_count == 1
