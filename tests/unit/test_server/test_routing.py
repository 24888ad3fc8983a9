"""Tests for route pattern compilation and the ordered route table."""

from __future__ import annotations

import pytest

from vaultbridge.server.routing import WILDCARD_PARAM, HttpMethod, RoutePattern, RouteTable


def _noop(request, response, params) -> None:  # type: ignore[no-untyped-def]
    pass


class TestRoutePatternCompile:
    def test_literal_route_has_no_params(self) -> None:
        pattern = RoutePattern.compile("GET", "/gm-vault")
        assert pattern.method is HttpMethod.GET
        assert pattern.param_names == ()
        assert pattern.has_wildcard is False

    def test_named_segments_in_declaration_order(self) -> None:
        pattern = RoutePattern.compile("GET", "/sessions/:session/pages/:slug")
        assert pattern.param_names == ("session", "slug")

    def test_lowercase_method_accepted(self) -> None:
        assert RoutePattern.compile("post", "/x").method is HttpMethod.POST

    def test_unknown_method_rejected(self) -> None:
        with pytest.raises(ValueError):
            RoutePattern.compile("DELETE", "/x")

    def test_options_cannot_be_registered(self) -> None:
        with pytest.raises(ValueError, match="OPTIONS"):
            RoutePattern.compile("OPTIONS", "/pages/:slug")

    def test_template_must_be_absolute(self) -> None:
        with pytest.raises(ValueError, match="must start with"):
            RoutePattern.compile("GET", "pages/:slug")


class TestRoutePatternMatch:
    def test_named_segment_extracted(self) -> None:
        pattern = RoutePattern.compile("GET", "/pages/:slug")
        assert pattern.match("/pages/abc-2") == {"slug": "abc-2"}

    def test_named_segment_does_not_cross_slashes(self) -> None:
        pattern = RoutePattern.compile("GET", "/pages/:slug")
        assert pattern.match("/pages/a/b") is None

    def test_named_segment_requires_content(self) -> None:
        pattern = RoutePattern.compile("GET", "/pages/:slug")
        assert pattern.match("/pages/") is None

    def test_multiple_params_positional(self) -> None:
        pattern = RoutePattern.compile("GET", "/sessions/:session/pages/:slug")
        assert pattern.match("/sessions/s1/pages/intro") == {"session": "s1", "slug": "intro"}

    def test_wildcard_captures_remaining_path(self) -> None:
        pattern = RoutePattern.compile("GET", "/images/*")
        assert pattern.match("/images/a/b/c.png") == {WILDCARD_PARAM: "a/b/c.png"}

    def test_wildcard_with_named_segment(self) -> None:
        pattern = RoutePattern.compile("GET", "/files/:bucket/*")
        assert pattern.match("/files/maps/world/region.webp") == {
            "bucket": "maps",
            WILDCARD_PARAM: "world/region.webp",
        }

    def test_wildcard_requires_separator(self) -> None:
        pattern = RoutePattern.compile("GET", "/images/*")
        assert pattern.match("/images") is None
        assert pattern.match("/imagesfoo/x") is None

    def test_literal_characters_are_escaped(self) -> None:
        pattern = RoutePattern.compile("GET", "/data.json")
        assert pattern.match("/data.json") == {}
        assert pattern.match("/dataXjson") is None

    def test_match_is_anchored(self) -> None:
        pattern = RoutePattern.compile("GET", "/gm-vault")
        assert pattern.match("/gm-vault/extra") is None
        assert pattern.match("/prefix/gm-vault") is None


class TestRouteTable:
    def test_preserves_insertion_order(self) -> None:
        table = RouteTable()
        table.add("GET", "/a", _noop)
        table.add("GET", "/b", _noop)
        assert [route.pattern.template for route in table] == ["/a", "/b"]
        assert len(table) == 2

    def test_first_registered_wins_on_overlap(self) -> None:
        first = lambda req, res, params: None  # noqa: E731
        second = lambda req, res, params: None  # noqa: E731
        table = RouteTable()
        table.add("GET", "/pages/:slug", first)
        table.add("GET", "/pages/special", second)

        found = table.find("GET", "/pages/special")
        assert found is not None
        route, params = found
        assert route.handler is first
        assert params == {"slug": "special"}

    def test_identical_duplicates_allowed(self) -> None:
        first = lambda req, res, params: None  # noqa: E731
        table = RouteTable()
        table.add("GET", "/x", first)
        table.add("GET", "/x", _noop)
        found = table.find("GET", "/x")
        assert found is not None and found[0].handler is first

    def test_method_must_match(self) -> None:
        table = RouteTable()
        table.add("POST", "/submit", _noop)
        assert table.find("GET", "/submit") is None
        assert table.find("POST", "/submit") is not None

    def test_no_match_returns_none(self) -> None:
        table = RouteTable()
        table.add("GET", "/a", _noop)
        assert table.find("GET", "/missing") is None
