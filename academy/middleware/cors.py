"""
Academy API — CORS gate

Starlette's CORSMiddleware only decides which headers to send back; this gate
refuses a cross-origin request outright unless its Origin is allowlisted.
Requests without an Origin header (same-origin, server-to-server) pass.
"""
import logging

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from academy.core.errors import error_response

logger = logging.getLogger(__name__)

CORS_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Origin", "Accept", "Content-Type", "Authorization", "X-Requested-With"]


def origin_allowed(origin: str | None, allowlist: list[str]) -> bool:
    return origin is None or origin in allowlist


class CorsGateMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, allowed_origins: list[str]):
        super().__init__(app)
        self.allowed_origins = list(allowed_origins)

    async def dispatch(self, request: Request, call_next) -> Response:
        origin = request.headers.get("origin")
        if origin_allowed(origin, self.allowed_origins):
            return await call_next(request)
        logger.info("Rejected %s %s from origin %s", request.method, request.url.path, origin)
        return error_response(403, "Not allowed by CORS")
