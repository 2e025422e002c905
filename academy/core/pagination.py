"""
Academy API — Pagination and free-text search helpers
"""
import re
from dataclasses import dataclass
from typing import Any

MAX_LIMIT = 200


@dataclass(frozen=True)
class PageRequest:
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


def _to_int(raw: Any, fallback: int) -> int:
    if raw is None or raw == "":
        return fallback
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return fallback


def clamp_page(page: Any, limit: Any, default_limit: int = 100) -> PageRequest:
    """limit is clamped to [1, 200], page to >= 1; unparsable values use the defaults."""
    limit_value = max(1, min(MAX_LIMIT, _to_int(limit, default_limit)))
    page_value = max(1, _to_int(page, 1))
    return PageRequest(page=page_value, limit=limit_value)


def text_search(q: str | None, fields: list[str]) -> dict[str, Any] | None:
    """
    Case-insensitive substring match of q against any of fields.
    q is regex-escaped first; an empty q adds no filter.
    """
    term = (q or "").strip()
    if not term:
        return None
    pattern = re.escape(term)
    return {"$or": [{field: {"$regex": pattern, "$options": "i"}} for field in fields]}
