"""Public quick-tunnel support for vaultbridge.

Public API:
    BinaryProvisioner -- Locates, downloads and verifies cloudflared
    TunnelSupervisor -- Runs cloudflared and captures its public URL
    describe_download -- Release asset lookup for an OS/CPU pair
"""

from vaultbridge.tunnel.acquisition import AcquisitionContext, DiagnosticBuffer, compile_hostname_pattern
from vaultbridge.tunnel.extract import AssetInstaller, PassthroughInstaller, TarballInstaller, select_installer
from vaultbridge.tunnel.platforms import describe_download
from vaultbridge.tunnel.provisioner import BinaryProvisioner
from vaultbridge.tunnel.supervisor import TunnelSupervisor

__all__ = [
    "AcquisitionContext",
    "AssetInstaller",
    "BinaryProvisioner",
    "DiagnosticBuffer",
    "PassthroughInstaller",
    "TarballInstaller",
    "TunnelSupervisor",
    "compile_hostname_pattern",
    "describe_download",
    "select_installer",
]
