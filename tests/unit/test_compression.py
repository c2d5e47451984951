"""
Unit tests for compression module (restorekeeper/backup/compression.py).

Tests archive creation and single-entry extraction for the supported formats.
"""

import os
import tarfile
import zipfile

import pytest

from restorekeeper.backup.compression import Compressor, get_archive_size
from restorekeeper.backup.errors import CompressionError, NotFoundError


class TestCompressorFormats:
    """Test Compressor.pack with the supported formats."""

    @pytest.mark.parametrize("compression_format,expected_extension", [
        ("zip", "zip"),
        ("tar.gz", "tar.gz"),
        ("tar.bz2", "tar.bz2"),
        ("tar.xz", "tar.xz"),
        ("none", "tar"),
    ])
    def test_pack_all_formats(self, source_files, tmp_path, compression_format, expected_extension):
        """Test creating archives in all supported formats."""
        compressor = Compressor(compression_format)

        archive_path = compressor.pack(
            [str(source_files / "a.txt")],
            str(tmp_path / f"test_archive.{compressor.extension}")
        )

        assert compressor.extension == expected_extension
        assert archive_path.endswith(expected_extension)
        assert os.path.exists(archive_path)
        assert os.path.getsize(archive_path) > 0

    def test_pack_multiple_files(self, source_files, tmp_path):
        """Test creating archive from multiple files."""
        files = [str(source_files / "a.txt"), str(source_files / "b.txt")]

        archive_path = Compressor('zip').pack(files, str(tmp_path / "multi.zip"))

        with zipfile.ZipFile(archive_path, 'r') as zipf:
            names = zipf.namelist()
            assert "a.txt" in names
            assert "b.txt" in names

    def test_pack_directory(self, source_files, tmp_path):
        """Test creating archive from directory."""
        archive_path = Compressor('tar.gz').pack(
            [str(source_files / "docs")],
            str(tmp_path / "dir_archive.tar.gz")
        )

        with tarfile.open(archive_path, 'r:gz') as tar:
            names = [m.name for m in tar.getmembers()]
            assert "docs/readme.md" in names
            assert "docs/notes.txt" in names

    def test_invalid_format(self):
        """Test invalid compression format raises ValueError."""
        with pytest.raises(ValueError, match="Invalid compression format"):
            Compressor("rar")

    def test_pack_no_sources(self, tmp_path):
        """Test empty source list raises CompressionError."""
        with pytest.raises(CompressionError, match="No source paths"):
            Compressor('zip').pack([], str(tmp_path / "empty.zip"))


class TestCompressorPack:
    """Test Compressor.pack error handling."""

    @pytest.mark.parametrize("compression_format", ["zip", "tar.gz"])
    def test_pack_missing_source_removes_partial_archive(self, source_files, tmp_path, compression_format):
        """Test a missing source fails and leaves no archive behind."""
        compressor = Compressor(compression_format)
        archive_path = str(tmp_path / f"broken.{compressor.extension}")

        with pytest.raises(CompressionError, match="does not exist"):
            compressor.pack(
                [str(source_files / "a.txt"), str(source_files / "missing.txt")],
                archive_path
            )

        assert not os.path.exists(archive_path)

    def test_pack_duplicate_basenames(self, tmp_path):
        """Test two sources with the same basename are rejected."""
        first = tmp_path / "one" / "same.txt"
        second = tmp_path / "two" / "same.txt"
        for path in (first, second):
            path.parent.mkdir()
            path.write_text(path.parent.name)

        compressor = Compressor('zip')
        with pytest.raises(CompressionError, match="same.txt"):
            compressor.pack([str(first), str(second)], str(tmp_path / "dup.zip"))


class TestCompressorExtract:
    """Test Compressor.extract for files and directories."""

    @pytest.mark.parametrize("compression_format", ["zip", "tar.gz", "none"])
    def test_extract_file_entry(self, source_files, tmp_path, compression_format):
        """Test extracting one file entry to a new path."""
        compressor = Compressor(compression_format)
        archive_path = compressor.pack(
            [str(source_files / "a.txt"), str(source_files / "b.txt")],
            str(tmp_path / f"archive.{compressor.extension}")
        )

        destination = tmp_path / "out" / "restored.txt"
        destination.parent.mkdir()
        compressor.extract(archive_path, "b.txt", str(destination))

        assert destination.read_text() == "content b"

    @pytest.mark.parametrize("compression_format", ["zip", "tar.xz"])
    def test_extract_directory_entry(self, source_files, tmp_path, compression_format):
        """Test extracting a directory entry recreates its tree."""
        compressor = Compressor(compression_format)
        archive_path = compressor.pack(
            [str(source_files / "docs")],
            str(tmp_path / f"docs.{compressor.extension}")
        )

        destination = tmp_path / "restored_docs"
        compressor.extract(archive_path, "docs", str(destination))

        assert (destination / "readme.md").read_text() == "# readme"
        assert (destination / "notes.txt").read_text() == "notes"

    def test_extract_overwrites_existing_file(self, source_files, tmp_path):
        """Test extraction replaces the content of an existing file."""
        compressor = Compressor('zip')
        archive_path = compressor.pack([str(source_files / "a.txt")], str(tmp_path / "a.zip"))

        destination = tmp_path / "a.txt"
        destination.write_text("stale")
        compressor.extract(archive_path, "a.txt", str(destination))

        assert destination.read_text() == "content a"

    def test_extract_missing_entry(self, source_files, tmp_path):
        """Test extracting an unknown entry raises NotFoundError."""
        compressor = Compressor('zip')
        archive_path = compressor.pack([str(source_files / "a.txt")], str(tmp_path / "a.zip"))

        with pytest.raises(NotFoundError, match="not found"):
            compressor.extract(archive_path, "zzz.txt", str(tmp_path / "zzz.txt"))

    def test_extract_entry_prefix_does_not_match(self, source_files, tmp_path):
        """Test an entry name only matches whole path components."""
        compressor = Compressor('zip')
        archive_path = compressor.pack([str(source_files / "docs")], str(tmp_path / "d.zip"))

        with pytest.raises(NotFoundError):
            compressor.extract(archive_path, "doc", str(tmp_path / "doc"))

    def test_extract_missing_archive(self, tmp_path):
        """Test extracting from a missing archive raises NotFoundError."""
        with pytest.raises(NotFoundError, match="Archive not found"):
            Compressor('zip').extract(str(tmp_path / "nope.zip"), "a.txt", str(tmp_path / "a.txt"))


class TestGetArchiveSize:
    """Test get_archive_size."""

    def test_get_archive_size(self, tmp_path):
        """Test size of an existing file."""
        archive = tmp_path / "sized.zip"
        archive.write_bytes(b"x" * 1234)

        assert get_archive_size(str(archive)) == 1234

    def test_get_archive_size_missing(self, tmp_path):
        """Test size of a missing file raises NotFoundError."""
        with pytest.raises(NotFoundError):
            get_archive_size(str(tmp_path / "missing.zip"))
