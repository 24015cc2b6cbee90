"""
Unit tests for ingestion file utilities.

Tests cover:
- Plain text files
- Gzip files with .gz extension
- Gzip files detected by magic bytes (no .gz extension)
- Log file discovery under a directory
"""

import gzip
from pathlib import Path

import pytest

from log_cruncher.ingestion import (
    SourceValidationError,
    discover_log_files,
    open_file_auto_decompress,
)


class TestOpenFileAutoDecompress:
    """Tests for open_file_auto_decompress function."""

    def test_plain_text_file(self, tmp_path: Path) -> None:
        """Test reading a plain text file."""
        test_file = tmp_path / "test.log"
        test_file.write_text('{"urlPath": "/"}\n')

        with open_file_auto_decompress(test_file) as f:
            content = f.read()

        assert content == '{"urlPath": "/"}\n'

    def test_gzip_file_with_extension(self, tmp_path: Path) -> None:
        """Test reading a gzip file with .gz extension."""
        test_file = tmp_path / "test.log.gz"
        with gzip.open(test_file, "wt", encoding="utf-8") as f:
            f.write("Compressed content\nLine 2")

        with open_file_auto_decompress(test_file) as f:
            content = f.read()

        assert content == "Compressed content\nLine 2"

    def test_gzip_file_magic_bytes_no_extension(self, tmp_path: Path) -> None:
        """Test reading a gzip file detected by magic bytes (no .gz extension)."""
        test_file = tmp_path / "test.log"
        with gzip.open(test_file, "wt", encoding="utf-8") as f:
            f.write("Magic bytes detection")

        with open_file_auto_decompress(test_file) as f:
            content = f.read()

        assert content == "Magic bytes detection"

    def test_file_not_found(self, tmp_path: Path) -> None:
        """Test FileNotFoundError for non-existent file."""
        with pytest.raises(FileNotFoundError):
            open_file_auto_decompress(tmp_path / "does_not_exist.log")

    def test_corrupt_gzip(self, tmp_path: Path) -> None:
        """A .gz file that is not gzip fails when read."""
        test_file = tmp_path / "corrupt.log.gz"
        test_file.write_bytes(b"not gzip at all")

        with pytest.raises(gzip.BadGzipFile):
            with open_file_auto_decompress(test_file) as f:
                f.read()


class TestDiscoverLogFiles:
    """Tests for discover_log_files."""

    def test_single_file(self, tmp_path: Path) -> None:
        test_file = tmp_path / "any-name.txt"
        test_file.write_text("")
        assert discover_log_files(test_file) == [test_file]

    def test_directory_scan_is_sorted_and_recursive(self, tmp_path: Path) -> None:
        (tmp_path / "b.log").write_text("")
        (tmp_path / "a.json").write_text("")
        (tmp_path / "nested").mkdir()
        (tmp_path / "nested" / "c.log.gz").write_bytes(b"")
        (tmp_path / "notes.md").write_text("")

        files = discover_log_files(tmp_path)

        assert [f.name for f in files] == ["a.json", "b.log", "c.log.gz"]

    def test_missing_path(self, tmp_path: Path) -> None:
        with pytest.raises(SourceValidationError, match="does not exist"):
            discover_log_files(tmp_path / "missing")

    def test_empty_directory(self, tmp_path: Path) -> None:
        with pytest.raises(SourceValidationError, match="No log files"):
            discover_log_files(tmp_path)
