"""
Input sanitizing: operator-key stripping, allowlisted filters, level parsing,
and the body/query sanitizer middleware.
"""
import copy
import json

import httpx
import pytest
from fastapi import FastAPI, Request
from httpx import ASGITransport

from academy.core.sanitize import filter_to_allowlist, is_operator_key, parse_level, strip_operator_keys
from academy.middleware.sanitize import OperatorKeySanitizer, is_json_media_type


def _keys(obj):
    if isinstance(obj, dict):
        for key, value in obj.items():
            yield key
            yield from _keys(value)
    elif isinstance(obj, list):
        for item in obj:
            yield from _keys(item)


NASTY = {
    "email": "a@b.c",
    "$where": "sleep(1000)",
    "profile.privilege": "admin",
    "nested": {"$gt": "", "ok": 1, "deeper": [{"$ne": None, "keep": True}, "plain"]},
    "list": [{"a.b": 1}, {"c": {"$in": [1, 2]}}],
}


def test_strip_operator_keys_removes_every_operator_at_any_depth():
    cleaned = strip_operator_keys(copy.deepcopy(NASTY))
    assert not any(is_operator_key(key) for key in _keys(cleaned))
    assert cleaned["email"] == "a@b.c"
    assert cleaned["nested"] == {"ok": 1, "deeper": [{"keep": True}, "plain"]}
    assert cleaned["list"] == [{}, {"c": {}}]


def test_strip_operator_keys_is_idempotent():
    once = strip_operator_keys(copy.deepcopy(NASTY))
    twice = strip_operator_keys(copy.deepcopy(once))
    assert once == twice


def test_strip_operator_keys_leaves_scalars_alone():
    assert strip_operator_keys("$gt") == "$gt"
    assert strip_operator_keys(None) is None
    assert strip_operator_keys(["$x", 1]) == ["$x", 1]


def test_filter_to_allowlist_keeps_only_allowed_non_empty_strings():
    query = {
        "email": "a@b.c",
        "whatsapp": "",
        "privilege": "admin",
        "_id": {"$ne": None},
        "$where": "1",
    }
    result = filter_to_allowlist(query, ["_id", "email", "whatsapp"])
    assert result == {"email": "a@b.c"}
    assert set(result) <= {"_id", "email", "whatsapp"}


def test_filter_to_allowlist_empty_inputs():
    assert filter_to_allowlist({}, ["email"]) == {}
    assert filter_to_allowlist({"email": "x"}, []) == {}


@pytest.mark.parametrize("raw,expected", [("3", 3), (" 2 ", 2), ("ielts", "ielts"), ("Conversation", "conversation")])
def test_parse_level(raw, expected):
    assert parse_level(raw) == expected


def test_parse_level_rejects_unknown_tags():
    with pytest.raises(ValueError):
        parse_level("advanced")


# ─── Middleware ────────────────────────────────────────────────────────────────
def _echo_app(max_body_bytes: int = 1024) -> FastAPI:
    app = FastAPI()

    @app.post("/echo")
    async def echo(request: Request):
        return {"body": await request.json(), "query": dict(request.query_params)}

    @app.get("/echo")
    async def echo_query(request: Request):
        return {"query": dict(request.query_params)}

    app.add_middleware(OperatorKeySanitizer, max_body_bytes=max_body_bytes)
    return app


@pytest.mark.asyncio
async def test_sanitizer_strips_body_and_query_operators():
    transport = ASGITransport(app=_echo_app())
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        r = await c.post(
            "/echo?email=a%40b.c&%24where=1&profile.x=2",
            json={"email": {"$gt": ""}, "name": "Ada", "a.b": 1},
        )
    assert r.status_code == 200
    assert r.json() == {"body": {"email": {}, "name": "Ada"}, "query": {"email": "a@b.c"}}


@pytest.mark.asyncio
async def test_sanitizer_rejects_oversized_json_body():
    transport = ASGITransport(app=_echo_app(max_body_bytes=64))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        r = await c.post("/echo", json={"padding": "x" * 200})
    assert r.status_code == 413
    assert r.json() == {"message": "Request body too large"}


@pytest.mark.asyncio
async def test_sanitizer_passes_clean_get_requests_untouched():
    transport = ASGITransport(app=_echo_app())
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        r = await c.get("/echo", params={"q": "smith", "page": "2"})
    assert r.json() == {"query": {"q": "smith", "page": "2"}}


@pytest.mark.parametrize(
    "content_type",
    ["APPLICATION/JSON", "application/vnd.api+json", "Application/Json; charset=UTF-8", "application/merge-patch+json"],
)
@pytest.mark.asyncio
async def test_sanitizer_covers_every_json_media_type(content_type):
    transport = ASGITransport(app=_echo_app())
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        r = await c.post(
            "/echo",
            content=json.dumps({"email": {"$ne": None}, "a.b": 1, "name": "Ada"}),
            headers={"Content-Type": content_type},
        )
    assert r.status_code == 200
    assert r.json()["body"] == {"email": {}, "name": "Ada"}


@pytest.mark.parametrize(
    "content_type,expected",
    [
        ("application/json", True),
        (" Application/JSON ; charset=utf-8", True),
        ("application/ld+json", True),
        ("text/plain", False),
        ("multipart/form-data; boundary=x", False),
        ("", False),
    ],
)
def test_is_json_media_type(content_type, expected):
    assert is_json_media_type(content_type) is expected
