"""Shared test fixtures for the vaultbridge test suite.

Provides fake cloudflared executables (POSIX shell scripts), a fake
subprocess with controllable output streams, and a stub provisioner.
"""

from __future__ import annotations

import asyncio
import stat
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from vaultbridge.domain.models import BinaryLocation, BinaryOrigin
from vaultbridge.tunnel.provisioner import BinaryProvisioner


# ---------------------------------------------------------------------------
# Fake binaries
# ---------------------------------------------------------------------------


def fake_binary_script(version: str = "cloudflared version 2025.1.0", exit_code: int = 0) -> bytes:
    """Shell script that mimics ``cloudflared --version``."""
    return f"#!/bin/sh\necho '{version}'\nexit {exit_code}\n".encode()


def write_fake_binary(path: Path, version: str = "cloudflared version 2025.1.0", exit_code: int = 0) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(fake_binary_script(version, exit_code))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


# ---------------------------------------------------------------------------
# Fake subprocess
# ---------------------------------------------------------------------------


class FakeProcess:
    """Stand-in for asyncio.subprocess.Process with scriptable output.

    Must be created inside a running event loop.
    """

    def __init__(self, pid: int = 4242) -> None:
        self.pid = pid
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.returncode: int | None = None
        self.killed = False
        self.terminated = False
        self._exited = asyncio.Event()

    def emit(self, text: str, stream: str = "stderr") -> None:
        getattr(self, stream).feed_data(text.encode())

    def exit(self, code: int) -> None:
        if self.returncode is not None:
            return
        self.returncode = code
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set()

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)

    def terminate(self) -> None:
        self.terminated = True
        self.exit(-15)

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Provisioner Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_location() -> BinaryLocation:
    return BinaryLocation(path=Path("/opt/fake/cloudflared"), origin=BinaryOrigin.SYSTEM_PATH)


@pytest.fixture
def stub_provisioner(fake_location: BinaryLocation) -> AsyncMock:
    """A provisioner whose resolve() returns a fixed location without I/O."""
    provisioner = AsyncMock(spec=BinaryProvisioner)
    provisioner.resolve.return_value = fake_location
    return provisioner


@pytest.fixture
def fake_binary():
    """Factory writing an executable fake cloudflared at a given path."""
    return write_fake_binary


@pytest.fixture
def fake_binary_bytes():
    """Factory returning the bytes of a fake cloudflared script."""
    return fake_binary_script


@pytest.fixture
def fake_process_cls() -> type[FakeProcess]:
    return FakeProcess
