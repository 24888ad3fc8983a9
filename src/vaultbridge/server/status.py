"""Built-in status routes exposing dispatcher and tunnel health."""

from __future__ import annotations

from typing import TYPE_CHECKING

from vaultbridge.server.responses import RouteResponse, send_json

if TYPE_CHECKING:
    from fastapi import Request

    from vaultbridge.server.dispatcher import Dispatcher
    from vaultbridge.tunnel.supervisor import TunnelSupervisor


def register_status_routes(dispatcher: Dispatcher, supervisor: TunnelSupervisor | None = None) -> None:
    """Register ``GET /health`` and ``GET /tunnel`` on the dispatcher."""

    def health(request: Request, response: RouteResponse, params: dict[str, str]) -> None:
        send_json(
            response,
            {
                "status": "ok",
                "tunnel_active": supervisor.is_active if supervisor else False,
            },
        )

    def tunnel(request: Request, response: RouteResponse, params: dict[str, str]) -> None:
        send_json(response, {"public_url": supervisor.public_url if supervisor else None})

    dispatcher.register_route("GET", "/health", health)
    dispatcher.register_route("GET", "/tunnel", tunnel)
