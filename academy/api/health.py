"""
Academy API — Health endpoint
"""
from fastapi import APIRouter

from academy.db.connection import connection_state
from academy.schemas.common import HealthResponse

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check():
    # Reports the dial state without dialing
    return HealthResponse(ok=True, db=connection_state())
