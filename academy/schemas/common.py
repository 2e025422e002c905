"""
Academy API — Shared response schemas
"""
from pydantic import BaseModel


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    ok: bool
    db: int  # 0 disconnected, 1 connected, 2 connecting
