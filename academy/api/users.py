"""
Academy API — User routes (sign-up, directory, profile edits, deletion)
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from academy.api.deps import (
    Caller,
    allow_self_or_privileged,
    get_caller,
    get_db,
    get_idp,
    require_privileged,
)
from academy.core.errors import UpstreamError
from academy.core.pagination import clamp_page
from academy.core.sanitize import filter_to_allowlist
from academy.db.documents import plain, to_object_id
from academy.models.user import PRIVILEGES
from academy.schemas.user import SignUpRequest, UserResponse, UserUpdateRequest, UsersPage
from academy.services import user_store
from academy.services.idp_mirror import IdpMirror, delete_idp_subject, mirror_email_change
from academy.services.roles import invalidate_role
from academy.services.roster import remove_from_rosters

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["users"])

DUPLICATE_MESSAGES = {
    "email": "Email already exists",
    "idpId": "Account already exists",
}


def _user_out(doc: dict) -> UserResponse:
    return UserResponse.model_validate(plain(doc))


def _parse_id(raw: str):
    try:
        return to_object_id(raw)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid ID")


@router.post("/sign-up", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(payload: SignUpRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    """Create the local record for an account that already exists at the IdP."""
    try:
        user = await user_store.create_user(db, payload.model_dump())
    except user_store.DuplicateUserError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_MESSAGES[exc.field])
    logger.info("Signed up user %s", user["_id"])
    return _user_out(user)


@router.get("/users", response_model=None)
async def list_users(
    privilege: str | None = None,
    q: str | None = None,
    page: str | None = None,
    limit: str | None = None,
    caller: Caller = Depends(require_privileged),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    Users sorted by (lastName, firstName). With both page and limit the
    response is {items, total, page, limit}; otherwise a plain list.
    """
    if privilege and privilege not in PRIVILEGES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid privilege")

    if page and limit:
        paging = clamp_page(page, limit)
        items, total = await user_store.list_users(db, privilege=privilege, q=q, page=paging)
        return UsersPage(
            items=[_user_out(doc) for doc in items],
            total=total,
            page=paging.page,
            limit=paging.limit,
        )

    users = await user_store.list_users(db, privilege=privilege, q=q)
    return [_user_out(doc) for doc in users]


@router.get("/user", response_model=UserResponse)
async def get_user(
    request: Request,
    caller: Caller = Depends(get_caller),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    Look up one user by _id, email or whatsapp. Non-privileged callers only
    ever resolve their own record; anything else is reported as not found.
    """
    filters: dict = filter_to_allowlist(dict(request.query_params), user_store.LOOKUP_FIELDS)
    if not filters:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="One of _id, email or whatsapp is required",
        )
    if "_id" in filters:
        filters["_id"] = _parse_id(filters["_id"])
    if not caller.privileged:
        filters["idpId"] = caller.subject_id

    user = await user_store.find_user(db, filters)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return _user_out(user)


@router.put("/user/{id}", response_model=UserResponse)
async def update_user(
    id: str,
    payload: UserUpdateRequest,
    caller: Caller = Depends(allow_self_or_privileged("id")),
    db: AsyncIOMotorDatabase = Depends(get_db),
    idp: IdpMirror = Depends(get_idp),
):
    """
    Edit a user. Owners may change profile fields; only privileged callers
    may change privilege. An email change is mirrored into the IdP before the
    local write.
    """
    user_id = _parse_id(id)
    updates = payload.model_dump(exclude_unset=True)

    original = await user_store.get_user(db, user_id)
    if original is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    privilege_changed = "privilege" in updates and updates["privilege"] != original.get("privilege")
    if privilege_changed and not caller.privileged:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    # ── Step 1: move the IdP primary address first ────────────────────────────
    new_email = updates.get("email")
    if new_email is not None and new_email != original["email"]:
        if await user_store.email_in_use(db, new_email, exclude_id=user_id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")
        try:
            await mirror_email_change(idp, original["idpId"], original["email"], new_email)
        except UpstreamError:
            logger.exception("Failed to add %s to IdP subject %s", new_email, original["idpId"])
            raise HTTPException(status_code=500, detail="Failed to update user")

    # ── Step 2: local write, with the cached role cleared on both sides ───────
    if privilege_changed:
        await invalidate_role(original["idpId"])
    try:
        updated = await user_store.update_user(db, user_id, updates)
    except user_store.DuplicateUserError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_MESSAGES[exc.field])
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if privilege_changed:
        await invalidate_role(original["idpId"])
    return _user_out(updated)


@router.delete("/user/{id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    id: str,
    caller: Caller = Depends(require_privileged),
    db: AsyncIOMotorDatabase = Depends(get_db),
    idp: IdpMirror = Depends(get_idp),
):
    """
    Delete a user: IdP subject first (abort if that fails), then the roster
    cascade, then the local record. The cached role is cleared before and
    after the local delete.
    """
    user_id = _parse_id(id)
    user = await user_store.get_user(db, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    try:
        await delete_idp_subject(idp, user["idpId"])
    except UpstreamError:
        logger.exception("Failed to delete IdP subject %s", user["idpId"])
        raise HTTPException(status_code=500, detail="Failed to delete user")

    await remove_from_rosters(db, user_id, user.get("enrolledClasses") or [])
    await invalidate_role(user["idpId"])
    await user_store.delete_user_record(db, user_id)
    await invalidate_role(user["idpId"])
    logger.info("Deleted user %s (IdP subject %s)", user_id, user["idpId"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)
