"""
Log ingestion: read Fastly log files and store them as dictionary-encoded
request facts.

Usage:
    from log_cruncher.ingestion import Ingester
    from log_cruncher.storage import get_backend

    with get_backend() as backend:
        backend.initialize()
        result = Ingester(backend).ingest_path('logs/')
"""

from .base import RawLogRecord
from .exceptions import (
    IngestionError,
    MalformedRecordError,
    ParseError,
    SourceValidationError,
    ValidationError,
)
from .fastly import FastlyLogReader, repair_trailing_comma
from .file_utils import discover_log_files, open_file_auto_decompress
from .ingester import Ingester, IngestionResult

__all__ = [
    # Records
    "RawLogRecord",
    # Reading
    "FastlyLogReader",
    "repair_trailing_comma",
    "discover_log_files",
    "open_file_auto_decompress",
    # Writing
    "Ingester",
    "IngestionResult",
    # Exceptions
    "IngestionError",
    "ValidationError",
    "MalformedRecordError",
    "ParseError",
    "SourceValidationError",
]
