"""Platform tables for locating and downloading cloudflared.

Maps (OS, CPU architecture) to the release asset published by Cloudflare,
and lists the per-OS directories where installers usually put the binary.
"""

from __future__ import annotations

import platform
import sys
from pathlib import Path

from vaultbridge.domain.models import DownloadDescriptor
from vaultbridge.errors import UnsupportedPlatformError

BINARY_NAME = "cloudflared"

# platform.machine() spellings -> canonical architecture key
_ARCH_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "x86",
    "i686": "x86",
    "x86": "x86",
}

# (system, arch) -> (asset filename, needs extraction)
RELEASE_ASSETS: dict[tuple[str, str], tuple[str, bool]] = {
    ("darwin", "arm64"): ("cloudflared-darwin-arm64.tgz", True),
    ("darwin", "x64"): ("cloudflared-darwin-amd64.tgz", True),
    ("win32", "x64"): ("cloudflared-windows-amd64.exe", False),
    ("win32", "x86"): ("cloudflared-windows-386.exe", False),
    ("linux", "arm64"): ("cloudflared-linux-arm64", False),
    ("linux", "x64"): ("cloudflared-linux-amd64", False),
    ("linux", "x86"): ("cloudflared-linux-386", False),
}

WELL_KNOWN_PATHS: dict[str, tuple[str, ...]] = {
    "darwin": (
        "/opt/homebrew/bin/cloudflared",
        "/usr/local/bin/cloudflared",
    ),
    "linux": (
        "/usr/local/bin/cloudflared",
        "/usr/bin/cloudflared",
    ),
    "win32": (
        r"C:\Program Files\Cloudflare\cloudflared.exe",
        r"C:\Program Files (x86)\Cloudflare\cloudflared.exe",
        r"C:\Program Files (x86)\cloudflared\cloudflared.exe",
    ),
}


def current_system() -> str:
    """Return the running OS as ``darwin``, ``linux``, ``win32`` or the raw platform."""
    if sys.platform.startswith("linux"):
        return "linux"
    return sys.platform


def current_machine() -> str:
    return platform.machine()


def normalize_arch(machine: str) -> str:
    return _ARCH_ALIASES.get(machine.lower(), machine.lower())


def binary_filename(system: str) -> str:
    """Name of the managed executable on ``system``."""
    return f"{BINARY_NAME}.exe" if system == "win32" else BINARY_NAME


def describe_download(system: str, machine: str, base_url: str) -> DownloadDescriptor:
    """Pick the release asset for a platform.

    Raises:
        UnsupportedPlatformError: If no asset is published for the pair.
    """
    entry = RELEASE_ASSETS.get((system, normalize_arch(machine)))
    if entry is None:
        raise UnsupportedPlatformError(system, machine)
    asset_name, needs_extraction = entry
    return DownloadDescriptor(
        asset_name=asset_name,
        asset_url=f"{base_url.rstrip('/')}/{asset_name}",
        needs_extraction=needs_extraction,
    )


def well_known_paths(system: str) -> list[Path]:
    return [Path(p) for p in WELL_KNOWN_PATHS.get(system, ())]
