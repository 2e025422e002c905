"""
Academy API — Identity provider mirror

The local users collection mirrors the primary email the IdP owns. Only two
kinds of IdP writes happen here: moving a subject's primary email and deleting
a subject. There is no transaction across the two stores, so each flow orders
its writes to keep the subject able to log in:

  email change : add new primary -> read back -> delete old -> (caller) local $set
  user delete  : delete IdP subject -> (caller) roster cascade + local delete
"""
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Protocol

import httpx

from academy.core.config import get_settings
from academy.core.errors import ConfigError, SubjectNotFound, UpstreamError

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdpEmailAddress:
    id: str
    email_address: str


class IdpMirror(Protocol):
    async def add_primary_email(self, subject_id: str, email: str) -> None: ...

    async def list_email_addresses(self, subject_id: str) -> list[IdpEmailAddress]: ...

    async def delete_email_address(self, email_id: str) -> None: ...

    async def delete_subject(self, subject_id: str) -> None: ...


class ClerkMirror:
    """IdpMirror backed by the Clerk Backend API."""

    def __init__(
        self,
        api_url: str,
        secret_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not secret_key:
            raise ConfigError("CLERK_SECRET_KEY is not set")
        self._api_url = api_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {secret_key}"}
        self._timeout = timeout
        self._transport = transport

    async def _request(self, method: str, path: str, json: dict | None = None) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self._api_url,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            raise UpstreamError(f"IdP {method} {path} timed out") from exc
        except httpx.RequestError as exc:
            raise UpstreamError(f"IdP {method} {path} unreachable: {exc}") from exc

        if response.status_code == 404:
            raise SubjectNotFound(f"IdP {method} {path} answered 404")
        if not response.is_success:
            # Status only, the IdP body never leaves this module
            raise UpstreamError(f"IdP {method} {path} answered {response.status_code}")
        return response

    async def add_primary_email(self, subject_id: str, email: str) -> None:
        await self._request(
            "POST",
            "/email_addresses",
            json={"user_id": subject_id, "email_address": email, "verified": True, "primary": True},
        )

    async def list_email_addresses(self, subject_id: str) -> list[IdpEmailAddress]:
        response = await self._request("GET", f"/users/{subject_id}")
        return [
            IdpEmailAddress(id=item["id"], email_address=item["email_address"])
            for item in response.json().get("email_addresses", [])
        ]

    async def delete_email_address(self, email_id: str) -> None:
        await self._request("DELETE", f"/email_addresses/{email_id}")

    async def delete_subject(self, subject_id: str) -> None:
        await self._request("DELETE", f"/users/{subject_id}")


@lru_cache()
def get_idp_mirror() -> IdpMirror:
    return ClerkMirror(
        settings.CLERK_API_URL,
        settings.CLERK_SECRET_KEY,
        timeout=settings.IDP_HTTP_TIMEOUT_SECONDS,
    )


async def mirror_email_change(idp: IdpMirror, subject_id: str, old_email: str, new_email: str) -> bool:
    """
    Make new_email the subject's verified primary address, then drop old_email.

    A failure adding the new address propagates and the caller must not touch
    the local record. A failure removing the old one is logged for
    reconciliation and reported by returning False; the subject keeps two
    addresses, which does not affect login.
    """
    await idp.add_primary_email(subject_id, new_email)

    try:
        addresses = await idp.list_email_addresses(subject_id)
        stale = next((a for a in addresses if a.email_address == old_email), None)
        if stale is None:
            logger.warning(
                "IdP subject %s has no address %s to remove after email change", subject_id, old_email
            )
            return True
        await idp.delete_email_address(stale.id)
    except UpstreamError:
        logger.exception(
            "RECONCILE: IdP subject %s still holds old address %s after switching to %s",
            subject_id, old_email, new_email,
        )
        return False
    return True


async def delete_idp_subject(idp: IdpMirror, subject_id: str) -> None:
    """Delete the IdP subject; a subject that is already gone counts as deleted."""
    try:
        await idp.delete_subject(subject_id)
    except SubjectNotFound:
        logger.warning("IdP subject %s was already deleted", subject_id)
