"""Domain models for vaultbridge.

Public API:
    TunnelState, BinaryOrigin -- Enumerations
    BinaryLocation, DownloadDescriptor -- Provisioning results
    TunnelSession -- A live quick tunnel
"""

from vaultbridge.domain.models import (
    BinaryLocation,
    BinaryOrigin,
    DownloadDescriptor,
    TunnelSession,
    TunnelState,
)

__all__ = [
    "BinaryLocation",
    "BinaryOrigin",
    "DownloadDescriptor",
    "TunnelSession",
    "TunnelState",
]
