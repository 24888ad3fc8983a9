"""Exception hierarchy shared by the dispatcher and the tunnel components."""

from __future__ import annotations


class VaultBridgeError(Exception):
    """Base class for every error raised by vaultbridge."""


class AlreadyRunningError(VaultBridgeError):
    """Raised when starting a component that is already starting or running."""

    def __init__(self, component: str) -> None:
        super().__init__(f"{component} is already running")
        self.component = component


class DispatcherError(VaultBridgeError):
    """Raised when the local HTTP dispatcher cannot bind its listener."""

    def __init__(self, message: str, port: int) -> None:
        super().__init__(message)
        self.port = port


class AddressInUseError(DispatcherError):
    """Raised when another process already holds the requested port."""

    def __init__(self, port: int) -> None:
        super().__init__(f"Port {port} is already in use", port)


class PortBindError(DispatcherError):
    """Raised for any other failure while binding the loopback listener."""

    def __init__(self, port: int, errno: int | None, reason: str = "") -> None:
        message = f"Cannot bind 127.0.0.1:{port} (errno={errno})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, port)
        self.errno = errno


class TunnelError(VaultBridgeError):
    """Base class for provisioning and tunnel supervision failures.

    ``output`` carries bounded diagnostic text (captured subprocess output)
    for operator visibility.
    """

    def __init__(self, message: str, output: str = "") -> None:
        if output:
            message = f"{message}\nOutput: {output}"
        super().__init__(message)
        self.output = output


class UnsupportedPlatformError(TunnelError):
    """Raised when no release asset exists for the current OS/CPU pair."""

    def __init__(self, system: str, machine: str) -> None:
        super().__init__(f"No cloudflared build available for {system}/{machine}")
        self.system = system
        self.machine = machine


class DownloadFailedError(TunnelError):
    """Raised when fetching the release asset fails."""


class ExtractionFailedError(TunnelError):
    """Raised when unpacking a downloaded archive fails."""


class VerificationFailedError(TunnelError):
    """Raised when a provisioned binary does not answer ``--version``."""


class ProcessSpawnError(TunnelError):
    """Raised when the tunnel subprocess cannot be started."""


class BinaryNotExecutableError(ProcessSpawnError):
    """Raised when the resolved binary vanished or lost its execute bit."""


class ProcessExitedPrematurelyError(TunnelError):
    """Raised when the tunnel exits before publishing a hostname."""

    def __init__(self, exit_code: int | None, output: str = "") -> None:
        super().__init__(f"cloudflared exited with code {exit_code}", output)
        self.exit_code = exit_code


class AcquisitionTimeoutError(TunnelError):
    """Raised when no public hostname appears within the acquisition window."""

    def __init__(self, timeout: float, output: str = "") -> None:
        super().__init__(
            f"Timed out after {timeout:g}s waiting for the cloudflared URL", output
        )
        self.timeout = timeout


class AcquisitionCancelledError(TunnelError):
    """Raised by a pending start() when stop() interrupts the acquisition."""
