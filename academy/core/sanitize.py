"""
Academy API — Input sanitizing helpers

Untrusted JSON must never carry MongoDB operators ($gt, $where, ...) or dotted
paths into a query or update document.
"""
from typing import Any, Iterable

LEVEL_TAGS = ("conversation", "ielts")


def is_operator_key(key: Any) -> bool:
    return isinstance(key, str) and (key.startswith("$") or "." in key)


def strip_operator_keys(obj: Any) -> Any:
    """
    Recursively delete every key starting with '$' or containing '.'.
    Mutates dicts and lists in place and returns the same object.
    """
    if isinstance(obj, dict):
        for key in [k for k in obj if is_operator_key(k)]:
            del obj[key]
        for value in obj.values():
            strip_operator_keys(value)
    elif isinstance(obj, list):
        for item in obj:
            strip_operator_keys(item)
    return obj


def filter_to_allowlist(query: dict[str, Any], allowed_fields: Iterable[str]) -> dict[str, str]:
    """Build an equality filter from the allowed keys that carry a non-empty string."""
    allowed = set(allowed_fields)
    return {
        key: value
        for key, value in query.items()
        if key in allowed and isinstance(value, str) and value != ""
    }


def parse_level(value: str) -> int | str:
    """A class level is an integer or one of the literal tags. Raises ValueError otherwise."""
    text = value.strip()
    if text.lower() in LEVEL_TAGS:
        return text.lower()
    return int(text)
