"""Route patterns and the ordered route table.

A route template is a literal path that may contain ``:name`` segments
(one path segment, no slashes) and may end in ``/*`` (the rest of the
path, slashes included). Templates are compiled once, at registration,
into an anchored regex plus the ordered list of parameter names.

Matching walks the table in registration order and the first hit wins;
overlapping patterns are never reordered by specificity.
"""

from __future__ import annotations

import enum
import re
from collections.abc import Awaitable, Callable, Iterator
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field

# Key under which a trailing ``/*`` capture is passed to handlers
WILDCARD_PARAM = "wildcard"

_NAMED_SEGMENT = re.compile(r":(\w+)")

Handler = Callable[[Any, Any, dict[str, str]], Awaitable[None] | None]


class HttpMethod(str, enum.Enum):
    GET = "GET"
    POST = "POST"
    OPTIONS = "OPTIONS"


class RoutePattern(BaseModel):
    """A compiled route template."""

    model_config = ConfigDict(frozen=True)

    method: HttpMethod
    template: str = Field(description="Path template as registered, e.g. /pages/:slug")
    regex: re.Pattern[str] = Field(description="Anchored matcher for request paths")
    param_names: tuple[str, ...] = Field(default=())
    has_wildcard: bool = Field(default=False)

    @classmethod
    def compile(cls, method: HttpMethod | str, template: str) -> RoutePattern:
        """Compile a template into a pattern.

        Raises:
            ValueError: If the method is not GET or POST, or the template
                does not start with ``/``. OPTIONS is answered by the
                preflight handler and can never reach a route.
        """
        method = HttpMethod(method.upper() if isinstance(method, str) else method)
        if method is HttpMethod.OPTIONS:
            raise ValueError("OPTIONS routes are not dispatched; preflight is answered directly")
        if not template.startswith("/"):
            raise ValueError(f"Route template must start with '/': {template!r}")

        has_wildcard = template.endswith("/*")
        body = template[:-2] if has_wildcard else template

        param_names: list[str] = []
        parts: list[str] = []
        # re.split with a capture group alternates literal text and names
        for index, chunk in enumerate(_NAMED_SEGMENT.split(body)):
            if index % 2:
                param_names.append(chunk)
                parts.append("([^/]+)")
            else:
                parts.append(re.escape(chunk))

        source = "".join(parts)
        if has_wildcard:
            source += "/(.*)"

        return cls(
            method=method,
            template=template,
            regex=re.compile(f"^{source}$"),
            param_names=tuple(param_names),
            has_wildcard=has_wildcard,
        )

    def match(self, path: str) -> dict[str, str] | None:
        """Return the extracted parameters, or None if the path does not match.

        The i-th captured group maps to the i-th named segment; the
        wildcard remainder (without its leading slash) is stored under
        ``WILDCARD_PARAM``.
        """
        found = self.regex.match(path)
        if found is None:
            return None
        groups = found.groups()
        params = dict(zip(self.param_names, groups))
        if self.has_wildcard:
            params[WILDCARD_PARAM] = groups[-1]
        return params


class Route(NamedTuple):
    pattern: RoutePattern
    handler: Handler


class RouteTable:
    """Insertion-ordered collection of routes."""

    def __init__(self) -> None:
        self._routes: list[Route] = []

    def __len__(self) -> int:
        return len(self._routes)

    def __iter__(self) -> Iterator[Route]:
        return iter(self._routes)

    def add(self, method: HttpMethod | str, template: str, handler: Handler) -> RoutePattern:
        pattern = RoutePattern.compile(method, template)
        self._routes.append(Route(pattern, handler))
        return pattern

    def find(self, method: str, path: str) -> tuple[Route, dict[str, str]] | None:
        """Return the first route matching ``method`` and ``path`` with its params."""
        for route in self._routes:
            if route.pattern.method.value != method:
                continue
            params = route.pattern.match(path)
            if params is not None:
                return route, params
        return None
