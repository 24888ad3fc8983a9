"""Strategies that turn a downloaded release asset into the managed binary.

The provisioner picks one by whether the asset needs extraction; it never
branches on the OS name itself.
"""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
from abc import ABC, abstractmethod
from pathlib import Path

from vaultbridge.errors import ExtractionFailedError

logger = logging.getLogger(__name__)


class AssetInstaller(ABC):
    """Places a downloaded asset at the managed binary path."""

    @abstractmethod
    def install(self, download: Path, destination: Path) -> None:
        """Produce ``destination`` from ``download`` and remove the download.

        Raises:
            ExtractionFailedError: If the asset cannot be unpacked or moved.
        """
        ...


class PassthroughInstaller(AssetInstaller):
    """The asset already is the executable; move it into place."""

    def install(self, download: Path, destination: Path) -> None:
        try:
            os.replace(download, destination)
        except OSError as e:
            raise ExtractionFailedError(f"Cannot move {download} to {destination}: {e}") from e


class TarballInstaller(AssetInstaller):
    """Extract the executable member of a gzipped tarball.

    Only the member whose basename equals the binary name is written, so
    archive paths never escape the destination directory.
    """

    def install(self, download: Path, destination: Path) -> None:
        try:
            with tarfile.open(download, "r:gz") as tar:
                member = self._find_member(tar, destination.name)
                source = tar.extractfile(member)
                if source is None:
                    raise ExtractionFailedError(f"Archive entry {member.name} is not a regular file")
                with source, open(destination, "wb") as out:
                    shutil.copyfileobj(source, out)
        except (tarfile.TarError, OSError) as e:
            raise ExtractionFailedError(f"Cannot extract {download}: {e}") from e
        finally:
            download.unlink(missing_ok=True)
        logger.debug("Extracted %s from %s", destination.name, download.name)

    @staticmethod
    def _find_member(tar: tarfile.TarFile, name: str) -> tarfile.TarInfo:
        for member in tar.getmembers():
            if member.isfile() and Path(member.name).name == name:
                return member
        raise ExtractionFailedError(f"Archive does not contain {name}")


def select_installer(needs_extraction: bool) -> AssetInstaller:
    return TarballInstaller() if needs_extraction else PassthroughInstaller()
