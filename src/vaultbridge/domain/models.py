"""Core domain models for the tunnel half of vaultbridge.

These models describe where a ``cloudflared`` binary came from, which
release asset fits the current platform, and the lifecycle of a running
quick tunnel.
"""

from __future__ import annotations

import enum
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class TunnelState(str, enum.Enum):
    """Lifecycle state of the tunnel supervisor."""

    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"


class BinaryOrigin(str, enum.Enum):
    """How a usable cloudflared binary was found."""

    CACHED = "cached"  # Managed copy downloaded earlier
    SYSTEM_PATH = "system_path"  # Found through PATH
    WELL_KNOWN_PATH = "well_known_path"  # Default install location
    FRESHLY_DOWNLOADED = "freshly_downloaded"


# ---------------------------------------------------------------------------
# Provisioning Models
# ---------------------------------------------------------------------------


class BinaryLocation(BaseModel):
    """A verified path to a runnable cloudflared binary."""

    model_config = ConfigDict(frozen=True)

    path: Path = Field(description="Absolute path to the executable")
    origin: BinaryOrigin = Field(description="Resolution step that produced the path")


class DownloadDescriptor(BaseModel):
    """Release asset that matches one (OS, CPU architecture) pair."""

    model_config = ConfigDict(frozen=True)

    asset_name: str = Field(description="Release asset filename")
    asset_url: str = Field(description="Full download URL of the asset")
    needs_extraction: bool = Field(
        default=False, description="Whether the asset is an archive to unpack"
    )


# ---------------------------------------------------------------------------
# Tunnel Session
# ---------------------------------------------------------------------------


class TunnelSession(BaseModel):
    """A live quick tunnel owned by the supervisor.

    Exists only while the supervisor is active; ``public_url`` is always
    set for a live session.
    """

    process: Any = Field(description="Running cloudflared process (asyncio.subprocess.Process)")
    public_url: str = Field(description="Lower-cased https URL assigned by the tunnel")
    binary: BinaryLocation = Field(description="Binary the process was spawned from")
    local_url: str = Field(description="Local origin the tunnel forwards to")
    started_at: datetime = Field(default_factory=datetime.now)
