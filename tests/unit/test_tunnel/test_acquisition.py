"""Tests for the settle-once hostname acquisition state."""

from __future__ import annotations

import asyncio

import pytest

from vaultbridge.errors import AcquisitionTimeoutError, ProcessExitedPrematurelyError
from vaultbridge.tunnel.acquisition import (
    SCAN_OVERLAP,
    AcquisitionContext,
    DiagnosticBuffer,
    compile_hostname_pattern,
    make_decoder,
)


class TestHostnamePattern:
    def test_matches_quick_tunnel_banner(self) -> None:
        pattern = compile_hostname_pattern()
        line = "|  https://calm-river-1234.trycloudflare.com                         |"
        found = pattern.search(line)
        assert found is not None
        assert found.group(0) == "https://calm-river-1234.trycloudflare.com"

    def test_ignores_other_domains(self) -> None:
        pattern = compile_hostname_pattern()
        assert pattern.search("https://developers.cloudflare.com/tunnel") is None
        assert pattern.search("http://plain.trycloudflare.com") is None

    def test_custom_suffix_is_escaped(self) -> None:
        pattern = compile_hostname_pattern("tunnel.test")
        assert pattern.search("https://abc.tunnel.test") is not None
        assert pattern.search("https://abc.tunnelXtest") is None


class TestDiagnosticBuffer:
    def test_keeps_most_recent_characters(self) -> None:
        buffer = DiagnosticBuffer(limit=10)
        buffer.append("0123456789")
        buffer.append("abc")
        assert buffer.text == "3456789abc"
        assert len(buffer) == 10

    def test_short_output_kept_whole(self) -> None:
        buffer = DiagnosticBuffer(limit=500)
        buffer.append("starting tunnel")
        assert buffer.text == "starting tunnel"


class TestAcquisitionContext:
    @pytest.mark.asyncio
    async def test_feed_resolves_lowercased(self) -> None:
        context = AcquisitionContext(compile_hostname_pattern())
        url = context.feed("INF +---+\nINF |  https://Bright-Fox.TryCloudflare.com  |\n")
        assert url == "https://bright-fox.trycloudflare.com"
        assert context.settled
        assert await context.outcome == "https://bright-fox.trycloudflare.com"

    @pytest.mark.asyncio
    async def test_url_split_across_chunks(self) -> None:
        context = AcquisitionContext(compile_hostname_pattern())
        assert context.feed("noise " * 100 + "https://split-") is None
        assert context.feed("host.trycloudflare.com\n") == "https://split-host.trycloudflare.com"

    @pytest.mark.asyncio
    async def test_streams_are_never_joined(self) -> None:
        context = AcquisitionContext(compile_hostname_pattern())
        assert context.feed("INF |  https://mixed-", "stdout") is None
        assert context.feed("up.trycloudflare.com |", "stderr") is None
        assert not context.settled

    @pytest.mark.asyncio
    async def test_split_survives_output_on_other_stream(self) -> None:
        context = AcquisitionContext(compile_hostname_pattern())
        context.feed("INF |  https://quiet-", "stderr")
        context.feed("y" * (SCAN_OVERLAP * 2), "stdout")
        assert context.feed("lake.trycloudflare.com |", "stderr") == "https://quiet-lake.trycloudflare.com"

    @pytest.mark.asyncio
    async def test_first_url_wins(self) -> None:
        context = AcquisitionContext(compile_hostname_pattern())
        context.feed("https://first.trycloudflare.com\n")
        context.feed("https://second.trycloudflare.com\n")
        assert await context.outcome == "https://first.trycloudflare.com"

    @pytest.mark.asyncio
    async def test_timeout_rejects_with_diagnostics(self) -> None:
        context = AcquisitionContext(compile_hostname_pattern(), diagnostic_limit=20)
        context.feed("failed to reach the edge: dial tcp timeout")
        context.arm_timer(0.01)

        with pytest.raises(AcquisitionTimeoutError) as exc_info:
            await context.outcome

        assert exc_info.value.output == "failed to reach the edge: dial tcp timeout"[-20:]
        assert context.timer is None

    @pytest.mark.asyncio
    async def test_hostname_after_timeout_is_ignored(self) -> None:
        context = AcquisitionContext(compile_hostname_pattern())
        context.arm_timer(0.01)
        await asyncio.sleep(0.05)

        assert context.feed("https://late.trycloudflare.com") == "https://late.trycloudflare.com"
        with pytest.raises(AcquisitionTimeoutError):
            await context.outcome

    @pytest.mark.asyncio
    async def test_resolve_cancels_timer(self) -> None:
        context = AcquisitionContext(compile_hostname_pattern())
        context.arm_timer(0.01)
        assert context.resolve("https://quick.trycloudflare.com")
        assert context.timer is None

        await asyncio.sleep(0.05)
        assert await context.outcome == "https://quick.trycloudflare.com"

    @pytest.mark.asyncio
    async def test_reject_after_resolve_is_noop(self) -> None:
        context = AcquisitionContext(compile_hostname_pattern())
        context.resolve("https://a.trycloudflare.com")
        assert context.reject(ProcessExitedPrematurelyError(1)) is False
        assert await context.outcome == "https://a.trycloudflare.com"

    @pytest.mark.asyncio
    async def test_close_abandons_pending_outcome(self) -> None:
        context = AcquisitionContext(compile_hostname_pattern())
        context.arm_timer(10)
        context.close()
        assert context.timer is None
        assert context.outcome.cancelled()

    @pytest.mark.asyncio
    async def test_split_after_long_chunk(self) -> None:
        context = AcquisitionContext(compile_hostname_pattern())
        assert context.feed("z" * (SCAN_OVERLAP * 20) + "https://long-") is None
        assert context.feed("tail.trycloudflare.com") == "https://long-tail.trycloudflare.com"


class TestDecoder:
    def test_multibyte_split(self) -> None:
        decoder = make_decoder()
        data = "✓ tunnel".encode()
        assert decoder.decode(data[:1]) == ""
        assert decoder.decode(data[1:]) == "✓ tunnel"
