"""
Academy API — Students with their classes, one paginated query

Replaces "list students, then fetch each student's classes" with a single
aggregation: users left-joined to classes on enrolledClasses, projected to
the listing fields. Phone numbers, rosters and join links never leave the
database. The page and its total are fetched concurrently.
"""
import asyncio
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase

from academy.core.pagination import PageRequest, text_search
from academy.db.connection import CLASSES, USERS
from academy.models.academy_class import CLASS_SUMMARY_FIELDS

STUDENT_FIELDS = ("firstName", "lastName", "email", "privilege", "creationDate")
USER_SEARCH_FIELDS = ["firstName", "lastName", "email"]
CLASS_SEARCH_FIELDS = ["enrolledClasses.instructor", "enrolledClasses.ageGroup"]

NAME_SORT = {"lastName": 1, "firstName": 1, "_id": 1}

LOOKUP_CLASSES = {
    "$lookup": {
        "from": CLASSES,
        "localField": "enrolledClasses",
        "foreignField": "_id",
        "as": "enrolledClasses",
    }
}

LISTING_PROJECTION: dict[str, int] = {
    "_id": 1,
    **{field: 1 for field in STUDENT_FIELDS},
    "enrolledClasses._id": 1,
    **{f"enrolledClasses.{field}": 1 for field in CLASS_SUMMARY_FIELDS},
}


def _class_side_filter(level: int | str | None, q: str | None) -> dict[str, Any]:
    match: dict[str, Any] = {}
    if level is not None:
        match["enrolledClasses.level"] = level
    search = text_search(q, USER_SEARCH_FIELDS + CLASS_SEARCH_FIELDS)
    if search:
        match.update(search)
    return match


def build_pipelines(
    page: PageRequest, level: int | str | None = None, q: str | None = None
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """Return (items pipeline, count pipeline) for one page of the listing."""
    students = {"$match": {"privilege": "student"}}
    page_stages = [{"$sort": NAME_SORT}, {"$skip": page.skip}, {"$limit": page.limit}]
    joined_filter = _class_side_filter(level, q)

    if not joined_filter:
        # Nothing filters on class fields: join only the rows of this page
        items = [students, *page_stages, LOOKUP_CLASSES, {"$project": LISTING_PROJECTION}]
        count = [students, {"$count": "total"}]
        return items, count

    joined = [students, LOOKUP_CLASSES, {"$match": joined_filter}]
    items = [*joined, *page_stages, {"$project": LISTING_PROJECTION}]
    count = [*joined, {"$count": "total"}]
    return items, count


async def students_with_classes(
    db: AsyncIOMotorDatabase,
    page: PageRequest,
    level: int | str | None = None,
    q: str | None = None,
) -> tuple[list[dict[str, Any]], int]:
    items_pipeline, count_pipeline = build_pipelines(page, level, q)
    users = db[USERS]
    items, counted = await asyncio.gather(
        users.aggregate(items_pipeline).to_list(length=None),
        users.aggregate(count_pipeline).to_list(length=None),
    )
    total = counted[0]["total"] if counted else 0
    return items, total
