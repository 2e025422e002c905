"""
Academy API — Route dependencies: database handle, caller identity, access policies

Privileged = admin or instructor. Page guards in the UI are cosmetic; every
route enforces its policy here.
"""
import logging
from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, HTTPException, Request, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from academy.core.errors import ConfigError, TransportError
from academy.db.connection import USERS, get_connection
from academy.db.documents import to_object_id
from academy.middleware.auth import AuthContext
from academy.services.idp_mirror import IdpMirror, get_idp_mirror
from academy.services.roles import Role, resolve_role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    subject_id: str
    role: Role | None

    @property
    def privileged(self) -> bool:
        return self.role is not None and self.role.privileged


async def get_db() -> AsyncIOMotorDatabase:
    try:
        return await get_connection()
    except (ConfigError, TransportError):
        logger.exception("DB connect failed")
        raise HTTPException(status_code=500, detail="Database connection failed")


def get_idp() -> IdpMirror:
    try:
        return get_idp_mirror()
    except ConfigError:
        logger.exception("Identity provider client unavailable")
        raise HTTPException(status_code=500, detail="Identity provider is not configured")


def get_auth(request: Request) -> AuthContext:
    auth = getattr(request.state, "auth", None)
    if auth is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return auth


async def get_caller(
    auth: AuthContext = Depends(get_auth),
    db: AsyncIOMotorDatabase = Depends(get_db),
) -> Caller:
    return Caller(subject_id=auth.subject_id, role=await resolve_role(db, auth.subject_id))


async def require_privileged(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.privileged:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return caller


def allow_self_or_privileged(param_name: str = "id") -> Callable:
    """
    Admit a privileged caller, or the owner of the user named by the path
    parameter. 400 on a malformed id, 404 when the user does not exist.
    """

    async def dependency(
        request: Request,
        caller: Caller = Depends(get_caller),
        db: AsyncIOMotorDatabase = Depends(get_db),
    ) -> Caller:
        try:
            target_id = to_object_id(request.path_params.get(param_name))
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid ID")

        if caller.privileged:
            return caller

        target = await db[USERS].find_one({"_id": target_id}, {"idpId": 1})
        if target is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        if target.get("idpId") != caller.subject_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return caller

    return dependency
