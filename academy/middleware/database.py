"""
Academy API — Lazy database dial

Every /api request except the health check waits for the shared MongoDB
handle before any route code runs. Warm processes return immediately.
"""
import logging

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from academy.core.errors import ConfigError, TransportError, error_response
from academy.db.connection import get_connection

logger = logging.getLogger(__name__)

SKIP_PATHS = {"/api/health"}


class DatabaseConnectMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path.rstrip("/")
        if not path.startswith("/api") or path in SKIP_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        try:
            await get_connection()
        except (ConfigError, TransportError):
            logger.exception("DB connect failed")
            return error_response(500, "Database connection failed")
        return await call_next(request)
