"""
Academy API — Student-facing class views and the admin students listing
"""
from fastapi import APIRouter, Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from academy.api.deps import Caller, allow_self_or_privileged, get_db, require_privileged
from academy.core.pagination import clamp_page
from academy.core.sanitize import parse_level
from academy.db.connection import CLASSES
from academy.db.documents import plain, to_object_id
from academy.models.academy_class import OWNER_PROJECTION
from academy.schemas.academy_class import ClassResponse
from academy.schemas.user import StudentsPage, StudentWithClasses
from academy.services import user_store
from academy.services.students_projection import students_with_classes

router = APIRouter(prefix="/api", tags=["students"])


@router.get("/students-classes/{id}", response_model=list[ClassResponse])
async def students_classes(
    id: str,
    caller: Caller = Depends(allow_self_or_privileged("id")),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """The user's enrolled classes in enrollment order."""
    user = await user_store.get_user(db, to_object_id(id))
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    enrolled = list(user.get("enrolledClasses") or [])
    if not enrolled:
        return []
    found = await db[CLASSES].find({"_id": {"$in": enrolled}}, OWNER_PROJECTION).to_list(length=None)
    by_id = {cls["_id"]: cls for cls in found}
    return [ClassResponse.model_validate(plain(by_id[cid])) for cid in enrolled if cid in by_id]


@router.get("/students-with-classes", response_model=StudentsPage)
async def list_students_with_classes(
    page: str | None = None,
    limit: str | None = None,
    level: str | None = None,
    q: str | None = None,
    caller: Caller = Depends(require_privileged),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    paging = clamp_page(page, limit)
    parsed_level = None
    if level:
        try:
            parsed_level = parse_level(level)
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid level")

    items, total = await students_with_classes(db, paging, level=parsed_level, q=q)
    return StudentsPage(
        items=[StudentWithClasses.model_validate(plain(doc)) for doc in items],
        total=total,
        page=paging.page,
        limit=paging.limit,
    )
