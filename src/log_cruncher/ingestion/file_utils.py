"""
Locating and opening raw log files.
"""

import gzip
from pathlib import Path
from typing import IO, Union

from .exceptions import SourceValidationError

# Log files picked up when a directory is given
LOG_FILE_PATTERNS = ("*.log", "*.json", "*.gz")


def open_file_auto_decompress(
    file_path: Union[str, Path],
    encoding: str = "utf-8",
) -> IO[str]:
    """
    Open a log file for text reading, gunzipping when needed.

    Fastly and S3 exports are sometimes gzipped without a .gz suffix, so the
    first two bytes are checked as well as the name.

    Raises:
        FileNotFoundError: The path does not exist
        gzip.BadGzipFile: A .gz file is not actually gzip
    """
    path = Path(file_path)

    if not path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    if path.suffix.lower() == ".gz":
        return gzip.open(path, "rt", encoding=encoding)

    with open(path, "rb") as f:
        magic = f.read(2)
    if magic == b"\x1f\x8b":
        return gzip.open(path, "rt", encoding=encoding)

    return open(path, "r", encoding=encoding)


def discover_log_files(path: Union[str, Path]) -> list[Path]:
    """
    Resolve an input path to the log files it names.

    A file is returned as-is; a directory is scanned recursively for
    LOG_FILE_PATTERNS, sorted by path so runs are repeatable.

    Raises:
        SourceValidationError: If the path is missing or holds no log files
    """
    path = Path(path)

    if not path.exists():
        raise SourceValidationError("Input path does not exist", path=str(path))

    if path.is_file():
        return [path]

    files = sorted(
        {f for pattern in LOG_FILE_PATTERNS for f in path.rglob(pattern) if f.is_file()}
    )
    if not files:
        raise SourceValidationError(
            f"No log files found (expected {', '.join(LOG_FILE_PATTERNS)})",
            path=str(path),
        )
    return files
