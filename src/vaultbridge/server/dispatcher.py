"""Loopback-only HTTP dispatcher.

Serves a small ordered table of dynamic routes through a FastAPI app run
by uvicorn on the current event loop. Every response carries the same
permissive CORS headers, including the Private Network Access header so
pages on a public origin may call into 127.0.0.1. Preflight ``OPTIONS``
requests are answered directly and never reach the route table.

Usage::

    dispatcher = Dispatcher()
    dispatcher.register_route("GET", "/pages/:slug", show_page)
    await dispatcher.start(3000)
    ...
    await dispatcher.stop()
"""

from __future__ import annotations

import asyncio
import errno
import inspect
import logging
import socket

import uvicorn
from fastapi import FastAPI, Request
from starlette.responses import Response

from vaultbridge.errors import AddressInUseError, AlreadyRunningError, PortBindError
from vaultbridge.server.responses import RouteResponse, send_error
from vaultbridge.server.routing import Handler, HttpMethod, RoutePattern, RouteTable

logger = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"

PRIVATE_NETWORK_REQUEST_HEADER = "Access-Control-Request-Private-Network"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": f"Content-Type, {PRIVATE_NETWORK_REQUEST_HEADER}",
    "Access-Control-Max-Age": "86400",
    "Access-Control-Allow-Private-Network": "true",
}

# Methods forwarded to the route table; anything unregistered ends as a 404
_DISPATCHED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"]

_STARTUP_POLL_INTERVAL = 0.01


class Dispatcher:
    """Routes loopback HTTP requests to registered handlers."""

    def __init__(self, shutdown_timeout: float | None = 5.0) -> None:
        self._routes = RouteTable()
        self._shutdown_timeout = shutdown_timeout
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._port: int | None = None
        self.app = self._create_app()

    @property
    def is_listening(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> int | None:
        """Port actually bound, or None when not listening."""
        return self._port

    @property
    def routes(self) -> RouteTable:
        return self._routes

    def register_route(self, method: HttpMethod | str, pattern: str, handler: Handler) -> RoutePattern:
        """Append a route; earlier registrations win on overlap.

        Raises:
            RuntimeError: If called while the dispatcher is listening.
            ValueError: For an unsupported method or malformed template.
        """
        if self.is_listening:
            raise RuntimeError("Routes cannot be registered while the dispatcher is listening")
        compiled = self._routes.add(method, pattern, handler)
        logger.debug("Registered route %s %s", compiled.method.value, pattern)
        return compiled

    async def start(self, port: int) -> None:
        """Bind 127.0.0.1:port and begin serving.

        Raises:
            AlreadyRunningError: If already listening.
            AddressInUseError: If another process holds the port.
            PortBindError: For any other bind failure.
        """
        if self.is_listening:
            raise AlreadyRunningError("Dispatcher")

        sock = self._bind(port)
        bound_port = sock.getsockname()[1]

        config = uvicorn.Config(
            self.app,
            lifespan="off",
            access_log=False,
            log_config=None,
            timeout_graceful_shutdown=self._shutdown_timeout,
        )
        server = uvicorn.Server(config)
        self._server = server
        self._port = bound_port
        self._serve_task = asyncio.create_task(server.serve(sockets=[sock]))

        while not server.started:
            if self._serve_task.done():
                self._server = None
                self._port = None
                sock.close()
                exc = self._serve_task.exception()
                raise PortBindError(port, None, str(exc) if exc else "server exited during startup")
            await asyncio.sleep(_STARTUP_POLL_INTERVAL)

        logger.info("Dispatcher listening on http://%s:%d", LOOPBACK_HOST, bound_port)

    async def stop(self) -> None:
        """Stop accepting connections. Safe to call when not listening."""
        if self._server is None:
            return
        server, task = self._server, self._serve_task
        self._server = None
        self._serve_task = None
        self._port = None

        server.should_exit = True
        if task is not None:
            await task
        logger.info("Dispatcher stopped")

    async def wait_closed(self) -> None:
        """Block until the listener shuts down (stop() or a signal to uvicorn)."""
        task = self._serve_task
        if task is not None:
            await asyncio.shield(task)

    async def dispatch(self, request: Request) -> Response:
        """Run the route table against one non-preflight request."""
        response = RouteResponse()
        path = _raw_path(request)
        found = self._routes.find(request.method, path)
        if found is None:
            logger.debug("No route for %s %s", request.method, path)
            send_error(response, 404, "Route not found")
            return response.to_response()

        route, params = found
        result = route.handler(request, response, params)
        if inspect.isawaitable(result):
            await result
        return response.to_response()

    @staticmethod
    def _bind(port: int) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.bind((LOOPBACK_HOST, port))
        except OSError as e:
            sock.close()
            if e.errno == errno.EADDRINUSE:
                raise AddressInUseError(port) from e
            raise PortBindError(port, e.errno, e.strerror or str(e)) from e
        sock.setblocking(False)
        return sock

    def _create_app(self) -> FastAPI:
        app = FastAPI(
            title="vaultbridge",
            description="Loopback content dispatcher",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )

        @app.middleware("http")
        async def apply_cors(request: Request, call_next):  # type: ignore[no-untyped-def]
            if request.method == "OPTIONS":
                response = Response(status_code=200)
            else:
                response = await call_next(request)
            response.headers.update(CORS_HEADERS)
            return response

        @app.api_route("/{path:path}", methods=_DISPATCHED_METHODS, include_in_schema=False)
        async def route_request(request: Request) -> Response:
            return await self.dispatch(request)

        return app


def _raw_path(request: Request) -> str:
    """Request path as sent on the wire, percent-escapes intact.

    Parameters are matched against the undecoded path, so ``%2F`` inside a
    segment never splits it.
    """
    raw = request.scope.get("raw_path")
    if raw is None:
        return request.url.path
    return raw.decode("latin-1").split("?", 1)[0]
