"""
Academy API — User document shape (collection: users)

_id           ObjectId, store-assigned
idpId         IdP subject id, unique, immutable
creationDate  datetime (UTC), immutable
firstName     title-cased on write
lastName      title-cased on write
email         unique, stored as given
whatsapp      optional opaque phone string
gender        lowercased on write when present
privilege     student | instructor | admin
enrolledClasses  ordered set of class ObjectIds (inverse of classes.roster)
"""
import re
from datetime import datetime, timezone
from typing import Any

PRIVILEGES = ("student", "instructor", "admin")
PRIVILEGED = frozenset({"admin", "instructor"})
DEFAULT_PRIVILEGE = "student"

_WORD = re.compile(r"\S+")


def title_case(value: str) -> str:
    return _WORD.sub(lambda m: m.group(0)[:1].upper() + m.group(0)[1:].lower(), value.strip())


def canonicalize(fields: dict[str, Any]) -> dict[str, Any]:
    """Apply name casing and gender normalization to a create/update payload in place."""
    for name in ("firstName", "lastName"):
        if isinstance(fields.get(name), str):
            fields[name] = title_case(fields[name])
    if isinstance(fields.get("gender"), str):
        fields["gender"] = fields["gender"].strip().lower()
    return fields


def new_user_document(
    *,
    first_name: str,
    last_name: str,
    email: str,
    idp_id: str,
    whatsapp: str | None = None,
    gender: str | None = None,
    privilege: str = DEFAULT_PRIVILEGE,
) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "idpId": idp_id,
        "firstName": first_name,
        "lastName": last_name,
        "email": email,
        "privilege": privilege,
        "enrolledClasses": [],
        "creationDate": datetime.now(tz=timezone.utc),
    }
    if whatsapp:
        doc["whatsapp"] = whatsapp
    if gender:
        doc["gender"] = gender
    return canonicalize(doc)


def is_privileged(privilege: str | None) -> bool:
    return privilege in PRIVILEGED
