"""
Academy API — BSON <-> API helpers
"""
from typing import Any

from bson import ObjectId


def is_object_id(value: Any) -> bool:
    # 24 hex characters only; bson also accepts any 12-character string
    return isinstance(value, ObjectId) or (
        isinstance(value, str) and len(value) == 24 and ObjectId.is_valid(value)
    )


def to_object_id(value: Any) -> ObjectId:
    """Raises ValueError on a malformed id."""
    if isinstance(value, ObjectId):
        return value
    if not is_object_id(value):
        raise ValueError(f"Invalid ID: {value!r}")
    return ObjectId(value)


def plain(doc: Any) -> Any:
    """Render ObjectIds as hex strings at any depth."""
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, dict):
        return {key: plain(value) for key, value in doc.items()}
    if isinstance(doc, list):
        return [plain(item) for item in doc]
    return doc
