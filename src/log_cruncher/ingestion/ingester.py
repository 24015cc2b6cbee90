"""
Ingester: raw log records in, dictionary entries and fact rows out.

Each record is written in its own transaction: every dimension value is
resolved through get-or-create, then the fact row is appended. A record is
either stored completely or not at all.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from ..config.constants import (
    DICT_ASN,
    DICT_CLIENT_IP,
    DICT_PATH,
    DICT_REFERER,
    DICT_USER_AGENT,
    TABLE_ASN_NAMES,
)
from ..storage import DictionaryStore, FactStore, RequestFact, StorageBackend
from .base import RawLogRecord
from .exceptions import MalformedRecordError, ParseError, ValidationError
from .fastly import FastlyLogReader
from .file_utils import discover_log_files

logger = logging.getLogger(__name__)

# Keep the error list bounded on very dirty inputs
MAX_RECORDED_ERRORS = 100


@dataclass
class IngestionResult:
    """Outcome of ingesting a batch of records."""

    ingested: int = 0
    failed: int = 0
    files_processed: int = 0
    files_failed: int = 0
    errors: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get ingestion duration in seconds."""
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def success(self) -> bool:
        return self.files_failed == 0

    def add_error(self, message: str) -> None:
        if len(self.errors) < MAX_RECORDED_ERRORS:
            self.errors.append(message)

    def merge(self, other: "IngestionResult") -> None:
        """Fold another result's counters into this one."""
        self.ingested += other.ingested
        self.failed += other.failed
        self.files_processed += other.files_processed
        self.files_failed += other.files_failed
        for error in other.errors:
            self.add_error(error)

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/serialization."""
        return {
            "ingested": self.ingested,
            "failed": self.failed,
            "files_processed": self.files_processed,
            "files_failed": self.files_failed,
            "duration_seconds": self.duration_seconds,
            "errors": self.errors,
        }


class Ingester:
    """
    Writes raw records into the Dictionary Store and Fact Store.

    Example:
        with get_backend('sqlite', db_path='data/access-logs.db') as backend:
            backend.initialize()
            result = Ingester(backend).ingest_path('logs/')
            print(result.ingested, result.failed)
    """

    def __init__(
        self,
        backend: StorageBackend,
        reader: Optional[FastlyLogReader] = None,
    ):
        self._backend = backend
        self.dictionaries = DictionaryStore(backend)
        self.facts = FactStore(backend)
        self.reader = reader or FastlyLogReader()

    def ingest(self, raw: Union[RawLogRecord, dict]) -> int:
        """
        Store one record and return the new fact id.

        Raises:
            MalformedRecordError: If the record fails validation (nothing
                is written)
            ReferentialIntegrityError: If the fact cannot reference its
                dictionary entries
        """
        record = self._coerce(raw)

        with self._backend.transaction():
            fact = RequestFact(
                url_path_ref=self.dictionaries.get_or_create(DICT_PATH, record.url_path),
                status=record.status,
                response_bytes=record.response_bytes,
                response_duration=record.response_duration,
                request_start_time=record.request_start_time,
                client_ip_ref=self._ref(DICT_CLIENT_IP, record.client_ip),
                asn_ref=self._ref(DICT_ASN, record.asn),
                referer_ref=self._ref(DICT_REFERER, record.referer),
                user_agent_ref=self._ref(DICT_USER_AGENT, record.user_agent),
                country_code=record.country_code,
                requests=record.requests,
                cache_state=record.cache_state,
                ipv6=record.ipv6,
                http2=record.http2,
            )
            if record.asn is not None and record.asn_name:
                self._record_asn_name(record.asn, record.asn_name)
            return self.facts.append(fact)

    def _ref(self, dictionary: str, value: Any) -> Optional[int]:
        if value is None:
            return None
        return self.dictionaries.get_or_create(dictionary, value)

    def _record_asn_name(self, asn: int, name: str) -> None:
        # Names learned at ingestion never overwrite earlier ones
        self._backend.execute(
            f"INSERT OR IGNORE INTO {TABLE_ASN_NAMES} (asn, name) VALUES (:asn, :name)",
            {"asn": asn, "name": name},
        )

    @staticmethod
    def _coerce(raw: Union[RawLogRecord, dict]) -> RawLogRecord:
        if isinstance(raw, RawLogRecord):
            return raw
        if isinstance(raw, dict):
            return RawLogRecord.from_dict(raw)
        raise MalformedRecordError(
            f"Record is not an object: {type(raw).__name__}", value=raw
        )

    def ingest_many(
        self,
        records: Iterable[Union[RawLogRecord, dict]],
        source: str = "records",
    ) -> IngestionResult:
        """
        Store a sequence of records, skipping malformed ones.

        Malformed records are logged, counted and skipped. Integrity
        failures are not: they abort the batch and propagate.
        """
        result = IngestionResult()

        for index, raw in enumerate(records, start=1):
            try:
                self.ingest(raw)
                result.ingested += 1
            except ValidationError as e:
                result.failed += 1
                result.add_error(f"{source} record {index}: {e}")
                logger.warning(f"Skipping malformed record {index} in {source}: {e}")

        result.completed_at = datetime.now(timezone.utc)
        logger.info(
            f"Ingested {result.ingested} records from {source} "
            f"({result.failed} skipped)"
        )
        return result

    def ingest_file(self, file_path: Union[str, Path]) -> IngestionResult:
        """
        Ingest one Fastly log file.

        Raises:
            ParseError: If the file is not decodable; records read before
                the bad spot stay ingested
        """
        result = self.ingest_many(self.reader.read_file(file_path), source=str(file_path))
        result.files_processed = 1
        return result

    def ingest_path(self, path: Union[str, Path]) -> IngestionResult:
        """
        Ingest a log file or every log file under a directory.

        A file that fails to decode is logged and counted, and the
        remaining files are still ingested.
        """
        total = IngestionResult()

        for file_path in discover_log_files(path):
            try:
                total.merge(self.ingest_file(file_path))
            except (ParseError, OSError, EOFError, UnicodeDecodeError) as e:
                total.files_failed += 1
                total.add_error(f"{file_path}: {e}")
                logger.error(f"Failed to read {file_path}: {e}")

        total.completed_at = datetime.now(timezone.utc)
        return total
