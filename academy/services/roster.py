"""
Academy API — Roster integrity between users and classes

users.enrolledClasses and classes.roster are two halves of one relation:
c in u.enrolledClasses  <=>  u in c.roster. Both sides are written with
$addToSet / $pull so replays are harmless. Writes go user side first; if the
class side fails the user side is pulled back before the error surfaces.
"""
import asyncio
import logging
from typing import Any, Iterable

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from academy.db.connection import CLASSES, USERS
from academy.db.documents import to_object_id

logger = logging.getLogger(__name__)


class RosterError(Exception):
    status_code = 400
    message = "Roster update rejected"

    def __init__(self, message: str | None = None):
        if message:
            self.message = message
        super().__init__(self.message)


class InvalidId(RosterError):
    message = "Invalid ID"


class UserNotFound(RosterError):
    status_code = 404
    message = "User not found"


class ClassNotFound(RosterError):
    status_code = 404
    message = "Class not found"


class EnrollmentClosed(RosterError):
    status_code = 403
    message = "Enrollment is currently closed for this class."


class AlreadyEnrolled(RosterError):
    message = "Already enrolled in this class"


class NotEnrolled(RosterError):
    message = "Not enrolled in this class"


def _ids(user_id: Any, class_id: Any) -> tuple[ObjectId, ObjectId]:
    try:
        return to_object_id(user_id), to_object_id(class_id)
    except ValueError as exc:
        raise InvalidId() from exc


async def _enrolled_classes(db: AsyncIOMotorDatabase, user_id: ObjectId) -> list[ObjectId]:
    user = await db[USERS].find_one({"_id": user_id}, {"enrolledClasses": 1})
    if user is None:
        raise UserNotFound()
    return list(user.get("enrolledClasses") or [])


async def _rollback_user_link(db: AsyncIOMotorDatabase, user_id: ObjectId, class_id: ObjectId) -> None:
    try:
        await db[USERS].update_one({"_id": user_id}, {"$pull": {"enrolledClasses": class_id}})
    except PyMongoError:
        logger.exception(
            "RECONCILE: user %s lists class %s but the class roster write failed and rollback failed",
            user_id, class_id,
        )
    else:
        logger.warning("Rolled back enrollment of user %s in class %s", user_id, class_id)


async def enroll(db: AsyncIOMotorDatabase, user_id: Any, class_id: Any) -> None:
    uid, cid = _ids(user_id, class_id)

    cls = await db[CLASSES].find_one({"_id": cid}, {"isEnrollmentOpen": 1})
    if cls is None:
        raise ClassNotFound()
    if not cls.get("isEnrollmentOpen"):
        raise EnrollmentClosed()
    if cid in await _enrolled_classes(db, uid):
        raise AlreadyEnrolled()

    linked = await db[USERS].update_one({"_id": uid}, {"$addToSet": {"enrolledClasses": cid}})
    if linked.matched_count == 0:
        # User deleted between the check and the write
        raise UserNotFound()
    try:
        result = await db[CLASSES].update_one({"_id": cid}, {"$addToSet": {"roster": uid}})
    except PyMongoError:
        await _rollback_user_link(db, uid, cid)
        raise
    if result.matched_count == 0:
        # Class deleted between the check and the write
        await _rollback_user_link(db, uid, cid)
        raise ClassNotFound()


async def unenroll(db: AsyncIOMotorDatabase, user_id: Any, class_id: Any) -> None:
    uid, cid = _ids(user_id, class_id)

    if cid not in await _enrolled_classes(db, uid):
        raise NotEnrolled()

    await db[USERS].update_one({"_id": uid}, {"$pull": {"enrolledClasses": cid}})
    result = await db[CLASSES].update_one({"_id": cid}, {"$pull": {"roster": uid}})
    if result.matched_count == 0:
        logger.warning("Unenrolled user %s from class %s which no longer exists", uid, cid)


async def remove_from_rosters(
    db: AsyncIOMotorDatabase, user_id: ObjectId, class_ids: Iterable[Any]
) -> list[Any]:
    """
    Pull user_id from every listed class roster (user deletion cascade).
    Missing classes and failed writes are logged and returned, never raised.
    """
    class_ids = list(class_ids)

    async def pull(class_id: Any) -> bool:
        result = await db[CLASSES].update_one({"_id": class_id}, {"$pull": {"roster": user_id}})
        return result.matched_count > 0

    outcomes = await asyncio.gather(*(pull(cid) for cid in class_ids), return_exceptions=True)

    unresolved = []
    for class_id, outcome in zip(class_ids, outcomes):
        if isinstance(outcome, BaseException):
            logger.error(
                "RECONCILE: could not pull user %s from class %s roster: %s", user_id, class_id, outcome
            )
            unresolved.append(class_id)
        elif not outcome:
            logger.warning("Class %s listed by user %s no longer exists", class_id, user_id)
            unresolved.append(class_id)
    return unresolved
