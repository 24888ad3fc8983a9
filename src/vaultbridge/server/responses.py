"""Response writers handed to route handlers.

Handlers own their output: they receive a ``RouteResponse`` and fill it
through ``send_json`` / ``send_html``. The dispatcher turns whatever was
written into the HTTP response without transforming it.
"""

from __future__ import annotations

import json
from typing import Any

from starlette.responses import Response

JSON_CONTENT_TYPE = "application/json"
HTML_CONTENT_TYPE = "text/html; charset=utf-8"


class RouteResponse:
    """Mutable response a handler writes into.

    A handler that writes nothing yields an empty 200.
    """

    def __init__(self) -> None:
        self.status_code = 200
        self.headers: dict[str, str] = {}
        self.body = b""
        self.sent = False

    def send(self, body: bytes, status_code: int = 200, content_type: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        if content_type:
            self.headers["Content-Type"] = content_type
        self.sent = True

    def to_response(self) -> Response:
        return Response(
            content=self.body,
            status_code=self.status_code,
            headers=self.headers,
        )


def send_json(response: RouteResponse, data: Any, status_code: int = 200) -> None:
    """Serialize ``data`` as pretty-printed JSON into the response."""
    body = json.dumps(data, indent=2).encode("utf-8")
    response.send(body, status_code, JSON_CONTENT_TYPE)


def send_html(response: RouteResponse, html: str, status_code: int = 200) -> None:
    """Write an HTML document into the response."""
    response.send(html.encode("utf-8"), status_code, HTML_CONTENT_TYPE)


def send_error(response: RouteResponse, status_code: int, message: str) -> None:
    """Write a structured ``{"error": message}`` body."""
    body = json.dumps({"error": message}).encode("utf-8")
    response.send(body, status_code, JSON_CONTENT_TYPE)
