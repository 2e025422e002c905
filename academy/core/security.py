"""
Academy API — IdP session token verification

Clerk session tokens are JWTs signed with the instance key; we only verify and
read the subject, sessions are issued by the IdP.
"""
from typing import Any

from jose import jwt, JWTError
from starlette.requests import Request

from academy.core.config import get_settings

settings = get_settings()


def extract_session_token(request: Request) -> str | None:
    """Bearer header first, then the IdP session cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        if token:
            return token
    return request.cookies.get(settings.CLERK_SESSION_COOKIE) or None


def decode_session_token(token: str) -> dict[str, Any]:
    """Decode and validate an IdP session token. Raises JWTError on failure."""
    if not settings.CLERK_JWT_KEY:
        raise JWTError("CLERK_JWT_KEY is not set")
    claims = jwt.decode(
        token,
        settings.CLERK_JWT_KEY,
        algorithms=[settings.CLERK_JWT_ALGORITHM],
        options={"verify_aud": False},
    )
    parties = settings.authorized_parties
    if parties and claims.get("azp") not in parties:
        raise JWTError("Unauthorized party")
    if not claims.get("sub"):
        raise JWTError("Token has no subject")
    return claims
