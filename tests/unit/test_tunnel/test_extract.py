"""Tests for release asset installers."""

from __future__ import annotations

import io
import tarfile
from pathlib import Path

import pytest

from vaultbridge.errors import ExtractionFailedError
from vaultbridge.tunnel.extract import (
    PassthroughInstaller,
    TarballInstaller,
    select_installer,
)


def make_tarball(path: Path, members: dict[str, bytes]) -> Path:
    with tarfile.open(path, "w:gz") as tar:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            tar.addfile(info, io.BytesIO(data))
    return path


class TestSelectInstaller:
    def test_archive_uses_tarball(self) -> None:
        assert isinstance(select_installer(True), TarballInstaller)

    def test_plain_asset_uses_passthrough(self) -> None:
        assert isinstance(select_installer(False), PassthroughInstaller)


class TestPassthroughInstaller:
    def test_moves_download_into_place(self, tmp_path: Path) -> None:
        download = tmp_path / "cloudflared-linux-amd64.part"
        download.write_bytes(b"binary")
        destination = tmp_path / "cloudflared"

        PassthroughInstaller().install(download, destination)

        assert destination.read_bytes() == b"binary"
        assert not download.exists()

    def test_missing_download(self, tmp_path: Path) -> None:
        with pytest.raises(ExtractionFailedError):
            PassthroughInstaller().install(tmp_path / "gone.part", tmp_path / "cloudflared")


class TestTarballInstaller:
    def test_extracts_binary_member(self, tmp_path: Path) -> None:
        download = make_tarball(
            tmp_path / "cloudflared-darwin-arm64.tgz.part",
            {"README.md": b"docs", "cloudflared": b"payload"},
        )
        destination = tmp_path / "bin" / "cloudflared"
        destination.parent.mkdir()

        TarballInstaller().install(download, destination)

        assert destination.read_bytes() == b"payload"
        assert not download.exists()
        assert not (destination.parent / "README.md").exists()

    def test_nested_member_written_flat(self, tmp_path: Path) -> None:
        download = make_tarball(tmp_path / "a.tgz.part", {"../../escape/cloudflared": b"nested"})
        destination = tmp_path / "bin" / "cloudflared"
        destination.parent.mkdir()

        TarballInstaller().install(download, destination)

        assert destination.read_bytes() == b"nested"
        assert not (tmp_path.parent / "escape").exists()

    def test_archive_without_binary(self, tmp_path: Path) -> None:
        download = make_tarball(tmp_path / "a.tgz.part", {"other": b"x"})
        with pytest.raises(ExtractionFailedError, match="does not contain cloudflared"):
            TarballInstaller().install(download, tmp_path / "cloudflared")
        assert not download.exists()

    def test_corrupt_archive(self, tmp_path: Path) -> None:
        download = tmp_path / "a.tgz.part"
        download.write_bytes(b"definitely not gzip")
        with pytest.raises(ExtractionFailedError):
            TarballInstaller().install(download, tmp_path / "cloudflared")
        assert not download.exists()
