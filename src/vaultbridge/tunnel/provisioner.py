"""Locate, download and verify the cloudflared executable.

Resolution order:

1. the managed copy under ``<data_dir>/bin`` (downloaded by an earlier run),
2. ``cloudflared`` on PATH,
3. the per-OS well-known install locations,
4. a fresh download of the release asset for this OS/CPU.

Steps 2 and 3 are skipped when the caller asks for the managed copy only.
Every candidate must answer ``--version`` with exit code 0 before it is
accepted, and a fresh download is never returned unverified.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import weakref
from collections.abc import Callable, Iterator
from pathlib import Path

import httpx

from vaultbridge.config.settings import DEFAULT_RELEASE_BASE_URL
from vaultbridge.domain.models import BinaryLocation, BinaryOrigin, DownloadDescriptor
from vaultbridge.errors import DownloadFailedError, VerificationFailedError
from vaultbridge.tunnel.extract import AssetInstaller, select_installer
from vaultbridge.tunnel.platforms import (
    BINARY_NAME,
    binary_filename,
    current_machine,
    current_system,
    describe_download,
    well_known_paths,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

# Verification output attached to errors is capped to this many characters
MAX_VERIFY_OUTPUT = 500

DOWNLOAD_CHUNK_SIZE = 64 * 1024

# One lock per (event loop, managed binary path) so concurrent provisioning
# never interleaves writes to the same file. asyncio locks bind to the loop
# that first waits on them, so each loop gets its own set.
_PROVISION_LOCKS: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[Path, asyncio.Lock]] = (
    weakref.WeakKeyDictionary()
)


def _provision_lock(path: Path) -> asyncio.Lock:
    locks = _PROVISION_LOCKS.setdefault(asyncio.get_running_loop(), {})
    key = path.resolve()
    lock = locks.get(key)
    if lock is None:
        lock = locks[key] = asyncio.Lock()
    return lock


class BinaryProvisioner:
    """Produces a verified path to a runnable cloudflared.

    Usage::

        provisioner = BinaryProvisioner(data_dir=Path.home() / ".vaultbridge")
        location = await provisioner.resolve(prefer_managed_only=False)
        print(location.path, location.origin)
    """

    def __init__(
        self,
        data_dir: Path | str,
        release_base_url: str = DEFAULT_RELEASE_BASE_URL,
        verify_timeout: float = 10.0,
        download_timeout: float = 60.0,
        max_redirects: int = 10,
        on_progress: ProgressCallback | None = None,
        system: str | None = None,
        machine: str | None = None,
        search_paths: list[Path] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        installer_factory: Callable[[bool], AssetInstaller] = select_installer,
    ) -> None:
        """
        Args:
            data_dir: Directory owning the managed ``bin/`` folder.
            release_base_url: Base URL the release asset name is appended to.
            verify_timeout: Seconds allowed for a ``--version`` probe.
            download_timeout: httpx timeout for the asset download.
            max_redirects: Redirect hops followed before giving up.
            on_progress: Called with each new whole download percentage.
            system: OS override (``darwin``/``linux``/``win32``), for testing.
            machine: CPU architecture override, for testing.
            search_paths: Well-known paths override, for testing.
            transport: httpx transport override, for testing.
            installer_factory: Picks the asset installer by ``needs_extraction``.
        """
        self._data_dir = Path(data_dir).expanduser()
        self._release_base_url = release_base_url
        self._verify_timeout = verify_timeout
        self._download_timeout = download_timeout
        self._max_redirects = max_redirects
        self._on_progress = on_progress
        self._system = system or current_system()
        self._machine = machine or current_machine()
        self._search_paths = search_paths
        self._transport = transport
        self._installer_factory = installer_factory

    @property
    def bin_dir(self) -> Path:
        return self._data_dir / "bin"

    @property
    def managed_path(self) -> Path:
        return self.bin_dir / binary_filename(self._system)

    async def resolve(self, prefer_managed_only: bool = False) -> BinaryLocation:
        """Return a verified cloudflared, downloading one if nothing usable exists.

        Raises:
            UnsupportedPlatformError: No release asset for this OS/CPU.
            DownloadFailedError: The asset could not be fetched.
            ExtractionFailedError: The asset could not be unpacked.
            VerificationFailedError: The downloaded binary does not run.
        """
        if await self._accept(self.managed_path):
            logger.info("Using managed cloudflared at %s", self.managed_path)
            return BinaryLocation(path=self.managed_path, origin=BinaryOrigin.CACHED)

        if not prefer_managed_only:
            for candidate, origin in self._external_candidates():
                if await self._accept(candidate):
                    logger.info("Using %s cloudflared at %s", origin.value, candidate)
                    return BinaryLocation(path=candidate, origin=origin)

        return await self.provision()

    async def provision(self) -> BinaryLocation:
        """Download, install and verify the managed copy."""
        descriptor = describe_download(self._system, self._machine, self._release_base_url)
        destination = self.managed_path

        async with _provision_lock(destination):
            # A concurrent caller may have finished provisioning while we waited
            if await self._accept(destination):
                return BinaryLocation(path=destination, origin=BinaryOrigin.CACHED)

            self.bin_dir.mkdir(parents=True, exist_ok=True)
            download = self.bin_dir / f"{descriptor.asset_name}.part"
            logger.info("Downloading cloudflared from %s", descriptor.asset_url)
            await self._download(descriptor, download)

            installer = self._installer_factory(descriptor.needs_extraction)
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, installer.install, download, destination)

            if self._system != "win32":
                os.chmod(destination, 0o755)

            ok, output = await self.verify(destination)
            if not ok:
                raise VerificationFailedError(
                    f"Downloaded cloudflared at {destination} failed verification",
                    output[-MAX_VERIFY_OUTPUT:],
                )

        logger.info("cloudflared installed at %s", destination)
        return BinaryLocation(path=destination, origin=BinaryOrigin.FRESHLY_DOWNLOADED)

    async def verify(self, path: Path) -> tuple[bool, str]:
        """Run ``path --version``; return (exited cleanly, combined output)."""
        try:
            process = await asyncio.create_subprocess_exec(
                str(path),
                "--version",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            return False, str(e)

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self._verify_timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return False, f"{path} --version did not exit within {self._verify_timeout:g}s"

        output = stdout.decode("utf-8", errors="replace").strip()
        return process.returncode == 0, output

    async def _accept(self, path: Path) -> bool:
        if not path.is_file():
            return False
        ok, output = await self.verify(path)
        if not ok:
            logger.debug("Rejected cloudflared candidate %s: %s", path, output[:200])
        return ok

    def _external_candidates(self) -> Iterator[tuple[Path, BinaryOrigin]]:
        seen: set[Path] = set()
        found = shutil.which(BINARY_NAME)
        if found:
            path = Path(found)
            seen.add(path)
            yield path, BinaryOrigin.SYSTEM_PATH

        paths = self._search_paths if self._search_paths is not None else well_known_paths(self._system)
        for path in paths:
            if path not in seen:
                seen.add(path)
                yield path, BinaryOrigin.WELL_KNOWN_PATH

    async def _download(self, descriptor: DownloadDescriptor, target: Path) -> None:
        """Stream the asset to ``target``, following redirects by hand."""
        url = descriptor.asset_url
        try:
            async with httpx.AsyncClient(
                follow_redirects=False,
                timeout=self._download_timeout,
                transport=self._transport,
            ) as client:
                for _ in range(self._max_redirects + 1):
                    async with client.stream("GET", url) as response:
                        if response.is_redirect:
                            location = response.headers.get("location")
                            if not location:
                                raise DownloadFailedError(
                                    f"Redirect from {url} has no Location header"
                                )
                            url = str(response.url.join(location))
                            logger.debug("Following redirect to %s", url)
                            continue
                        response.raise_for_status()
                        await self._write_body(response, target)
                        return
        except httpx.HTTPError as e:
            target.unlink(missing_ok=True)
            raise DownloadFailedError(f"Download of {descriptor.asset_name} failed: {e}") from e
        except OSError as e:
            target.unlink(missing_ok=True)
            raise DownloadFailedError(f"Cannot write {target}: {e}") from e

        raise DownloadFailedError(
            f"Too many redirects (>{self._max_redirects}) downloading {descriptor.asset_name}"
        )

    async def _write_body(self, response: httpx.Response, target: Path) -> None:
        try:
            total = int(response.headers.get("content-length", "0"))
        except ValueError:
            total = 0

        received = 0
        last_percent = -1
        with open(target, "wb") as fh:
            async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                fh.write(chunk)
                received += len(chunk)
                if total > 0 and self._on_progress is not None:
                    percent = min(100, received * 100 // total)
                    if percent > last_percent:
                        last_percent = percent
                        self._report_progress(percent)

    def _report_progress(self, percent: int) -> None:
        try:
            self._on_progress(percent)  # type: ignore[misc]
        except Exception as e:
            logger.warning("Download progress callback failed: %s", e)
