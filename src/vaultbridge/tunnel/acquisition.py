"""Per-call state for racing hostname discovery against a deadline.

Each ``TunnelSupervisor.start()`` builds its own ``AcquisitionContext``:
the bounded diagnostic buffer, the scan window for the hostname, the
pending timer and a single-use outcome future. Whichever of hostname,
timeout, process exit or stop() settles the future first wins; later
attempts are ignored.
"""

from __future__ import annotations

import asyncio
import codecs
import re
from typing import Any

from vaultbridge.errors import AcquisitionTimeoutError

DEFAULT_HOSTNAME_SUFFIX = "trycloudflare.com"

# Characters of earlier output kept in front of each chunk so a URL split
# across two reads is still found
SCAN_OVERLAP = 256


def compile_hostname_pattern(suffix: str = DEFAULT_HOSTNAME_SUFFIX) -> re.Pattern[str]:
    """``https://<label>.<suffix>`` where label is ``[a-z0-9-]+``, any case."""
    return re.compile(rf"https://[a-z0-9-]+\.{re.escape(suffix)}", re.IGNORECASE)


class DiagnosticBuffer:
    """Keeps only the most recent ``limit`` characters of process output."""

    def __init__(self, limit: int = 500) -> None:
        self._limit = limit
        self._text = ""

    @property
    def text(self) -> str:
        return self._text

    def append(self, text: str) -> None:
        self._text = (self._text + text)[-self._limit:]

    def __len__(self) -> int:
        return len(self._text)


class AcquisitionContext:
    """Settle-once race state owned by a single start() call."""

    def __init__(
        self,
        hostname_pattern: re.Pattern[str],
        diagnostic_limit: int = 500,
    ) -> None:
        self._loop = asyncio.get_running_loop()
        self._pattern = hostname_pattern
        self._tails: dict[str, str] = {}
        self.outcome: asyncio.Future[str] = self._loop.create_future()
        self.diagnostics = DiagnosticBuffer(diagnostic_limit)
        self.timer: asyncio.TimerHandle | None = None
        self.process: Any = None
        self.cancelled = False

    @property
    def settled(self) -> bool:
        return self.outcome.done()

    def feed(self, text: str, source: str = "output") -> str | None:
        """Record output and try to resolve with the first hostname in it.

        ``source`` names the stream the text came from; each stream keeps
        its own scan tail so chunks from different pipes are never joined.
        """
        self.diagnostics.append(text)
        window = self._tails.get(source, "") + text
        self._tails[source] = window[-SCAN_OVERLAP:]
        found = self._pattern.search(window)
        if found is None:
            return None
        url = found.group(0).lower()
        self.resolve(url)
        return url

    def resolve(self, url: str) -> bool:
        """Settle with ``url``; False if the race was already decided."""
        if self.outcome.done():
            return False
        self.outcome.set_result(url)
        self._cancel_timer()
        return True

    def reject(self, error: BaseException) -> bool:
        """Settle with ``error``; False if the race was already decided."""
        if self.outcome.done():
            return False
        self.outcome.set_exception(error)
        self._cancel_timer()
        return True

    def arm_timer(self, timeout: float) -> None:
        self.timer = self._loop.call_later(timeout, self._expire, timeout)

    def close(self) -> None:
        """Drop the timer and abandon the outcome if nothing settled it."""
        self._cancel_timer()
        if not self.outcome.done():
            self.outcome.cancel()

    def _expire(self, timeout: float) -> None:
        self.timer = None
        self.reject(AcquisitionTimeoutError(timeout, self.diagnostics.text))

    def _cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


def make_decoder() -> codecs.IncrementalDecoder:
    """UTF-8 decoder that tolerates multi-byte characters split across reads."""
    return codecs.getincrementaldecoder("utf-8")(errors="replace")
