"""
Academy API — JSON body limit and operator-key sanitizer

Pure ASGI middleware: it buffers a JSON request body, removes every key that
starts with '$' or contains '.', and replays the cleaned body downstream.
Query-string parameters with such names are dropped as well.
"""
import json
import logging
from urllib.parse import parse_qsl, urlencode

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from academy.core.errors import error_response
from academy.core.sanitize import is_operator_key, strip_operator_keys

logger = logging.getLogger(__name__)


def is_json_media_type(content_type: str) -> bool:
    """application/json or any +json suffix type, case-insensitive, parameters ignored."""
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _clean_query_string(raw: bytes) -> bytes:
    if not raw:
        return raw
    pairs = parse_qsl(raw.decode("latin-1"), keep_blank_values=True)
    kept = [(k, v) for k, v in pairs if not is_operator_key(k)]
    if len(kept) == len(pairs):
        return raw
    return urlencode(kept).encode("latin-1")


class OperatorKeySanitizer:
    def __init__(self, app: ASGIApp, max_body_bytes: int = 100 * 1024):
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        scope = dict(scope)
        scope["query_string"] = _clean_query_string(scope.get("query_string", b""))

        headers = Headers(scope=scope)
        if not is_json_media_type(headers.get("content-type", "")):
            await self.app(scope, receive, send)
            return

        body = b""
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            body += message.get("body", b"")
            more_body = message.get("more_body", False)
            if len(body) > self.max_body_bytes:
                response = error_response(413, "Request body too large")
                await response(scope, receive, send)
                return

        if body:
            try:
                payload = json.loads(body)
            except ValueError:
                # Left as-is; request validation answers 400
                pass
            else:
                body = json.dumps(strip_operator_keys(payload)).encode("utf-8")
                scope["headers"] = [
                    (name, value) for name, value in scope["headers"] if name != b"content-length"
                ] + [(b"content-length", str(len(body)).encode("latin-1"))]

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)
