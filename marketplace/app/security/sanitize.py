# marketplace/app/security/sanitize.py
"""
Transport-level XSS mitigation.

Every top-level string in a JSON request body and every query-string value
is HTML-escaped before routing, so markup never reaches validation,
handlers or the database in executable form, whatever the renderer does
with it later.
"""
import json
from urllib.parse import parse_qsl, urlencode

from markupsafe import escape
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send


def escape_html(value):
    """Escape & < > " ' and / in strings; other values pass through."""
    if not isinstance(value, str):
        return value
    return str(escape(value)).replace("/", "&#x2F;")


def sanitize_query_string(query_string: bytes) -> bytes:
    pairs = parse_qsl(query_string.decode("latin-1"), keep_blank_values=True)
    return urlencode([(key, escape_html(value)) for key, value in pairs]).encode("latin-1")


def sanitize_json_body(body: bytes) -> bytes:
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        # Left alone: validation reports malformed bodies
        return body
    if not isinstance(payload, dict):
        return body
    cleaned = {key: escape_html(value) for key, value in payload.items()}
    return json.dumps(cleaned).encode("utf-8")


class SanitizeInputMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        scope = dict(scope)
        if scope.get("query_string"):
            scope["query_string"] = sanitize_query_string(scope["query_string"])

        headers = Headers(scope=scope)
        if "application/json" not in headers.get("content-type", ""):
            await self.app(scope, receive, send)
            return

        body = b""
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] != "http.request":
                # Client went away mid-body
                await self.app(scope, receive, send)
                return
            body += message.get("body", b"")
            more_body = message.get("more_body", False)

        body = sanitize_json_body(body) if body else body
        scope["headers"] = [
            (name, value) for name, value in scope["headers"] if name != b"content-length"
        ] + [(b"content-length", str(len(body)).encode("latin-1"))]

        body_sent = False

        async def replay_receive() -> Message:
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay_receive, send)
