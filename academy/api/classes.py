"""
Academy API — Class catalog and student export routes
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from academy.api.deps import Caller, get_caller, get_db, require_privileged
from academy.core.sanitize import filter_to_allowlist, parse_level
from academy.db.connection import CLASSES
from academy.db.documents import plain
from academy.models.academy_class import CATALOG_PROJECTION
from academy.schemas.academy_class import ClassSummary, StudentsExport
from academy.services.students_export import export_rows

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["classes"])

CATALOG_FILTERS = ("level", "instructor", "ageGroup")


@router.get("/all-classes", response_model=list[ClassSummary])
async def all_classes(
    request: Request,
    caller: Caller = Depends(get_caller),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    filters: dict = filter_to_allowlist(dict(request.query_params), CATALOG_FILTERS)
    if "level" in filters:
        try:
            filters["level"] = parse_level(filters["level"])
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid level")

    classes = await db[CLASSES].find(filters, CATALOG_PROJECTION).to_list(length=None)
    return [ClassSummary.model_validate(plain(cls)) for cls in classes]


@router.get("/students-export", response_model=StudentsExport)
async def students_export(
    caller: Caller = Depends(require_privileged),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    rows = await export_rows(db)
    logger.info("Student export of %d rows requested by %s", len(rows), caller.subject_id)
    return StudentsExport(student_data=rows)
