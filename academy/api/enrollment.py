"""
Academy API — Enrollment routes
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from academy.api.deps import Caller, allow_self_or_privileged, get_db
from academy.schemas.academy_class import EnrollRequest
from academy.schemas.common import MessageResponse
from academy.services import roster

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["enrollment"])


@router.put("/users/{id}/enroll", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def enroll(
    id: str,
    payload: EnrollRequest,
    caller: Caller = Depends(allow_self_or_privileged("id")),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    try:
        await roster.enroll(db, id, payload.classId)
    except roster.RosterError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)
    except PyMongoError:
        logger.exception("Enrollment of user %s in class %s failed", id, payload.classId)
        raise HTTPException(status_code=500, detail="Error enrolling into class")

    logger.info("User %s enrolled in class %s by %s", id, payload.classId, caller.subject_id)
    return MessageResponse(message="Enrolled successfully")


@router.put("/users/{id}/unenroll", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def unenroll(
    id: str,
    payload: EnrollRequest,
    caller: Caller = Depends(allow_self_or_privileged("id")),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    try:
        await roster.unenroll(db, id, payload.classId)
    except roster.RosterError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)
    except PyMongoError:
        logger.exception("Unenrollment of user %s from class %s failed", id, payload.classId)
        raise HTTPException(status_code=500, detail="Error unenrolling from class")

    logger.info("User %s unenrolled from class %s by %s", id, payload.classId, caller.subject_id)
    return MessageResponse(message="Unenrolled successfully")
