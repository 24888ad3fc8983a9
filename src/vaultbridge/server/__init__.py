"""Loopback HTTP dispatcher for vaultbridge.

Public API:
    Dispatcher -- Loopback listener with an ordered route table
    send_json / send_html -- Response writers for route handlers
    RoutePattern, RouteTable, HttpMethod -- Route compilation and matching
    register_status_routes -- /health and /tunnel status endpoints
"""

from vaultbridge.server.dispatcher import CORS_HEADERS, LOOPBACK_HOST, Dispatcher
from vaultbridge.server.responses import RouteResponse, send_error, send_html, send_json
from vaultbridge.server.routing import WILDCARD_PARAM, HttpMethod, RoutePattern, RouteTable
from vaultbridge.server.status import register_status_routes

__all__ = [
    "CORS_HEADERS",
    "Dispatcher",
    "HttpMethod",
    "LOOPBACK_HOST",
    "RoutePattern",
    "RouteResponse",
    "RouteTable",
    "WILDCARD_PARAM",
    "register_status_routes",
    "send_error",
    "send_html",
    "send_json",
]
