"""
Academy API — IdP session authentication middleware
Validates the caller's IdP session token on every protected /api route;
returns 401 on failure without saying why.
"""
import logging
from dataclasses import dataclass

from fastapi import Request, Response
from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware

from academy.core.errors import error_response
from academy.core.security import decode_session_token, extract_session_token

logger = logging.getLogger(__name__)

# /api paths that do NOT require authentication
PUBLIC_PATHS = {
    "/api/health",
    "/api/sign-up",
}


@dataclass(frozen=True)
class AuthContext:
    subject_id: str
    session_id: str | None = None


def is_protected(path: str) -> bool:
    path = path.rstrip("/")
    return (path == "/api" or path.startswith("/api/")) and path not in PUBLIC_PATHS


def unauthorized() -> Response:
    return error_response(401, "Unauthorized", headers={"WWW-Authenticate": "Bearer"})


class SessionAuthMiddleware(BaseHTTPMiddleware):
    """
    Intercepts every protected request. Verifies the session token.
    Attaches AuthContext to request.state.auth on success.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method == "OPTIONS" or not is_protected(request.url.path):
            return await call_next(request)

        token = extract_session_token(request)
        if not token:
            return unauthorized()

        try:
            claims = decode_session_token(token)
        except JWTError as exc:
            logger.info("Rejected session token on %s: %s", request.url.path, exc)
            return unauthorized()

        request.state.auth = AuthContext(subject_id=claims["sub"], session_id=claims.get("sid"))
        return await call_next(request)
