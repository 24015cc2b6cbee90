#!/usr/bin/env python3
"""
CLI script to ingest Fastly access logs into the SQLite store.

Usage:
    # Ingest one file (plain or gzip-compressed)
    python scripts/ingest_logs.py logs/2024-01-07T12:00:00.000-abc.log.gz

    # Ingest every *.log / *.json / *.gz file under a directory
    python scripts/ingest_logs.py logs/

    # Validate records without writing anything
    python scripts/ingest_logs.py logs/ --validate-only
"""

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from log_cruncher.config import get_settings
from log_cruncher.ingestion import (
    FastlyLogReader,
    Ingester,
    IngestionResult,
    MalformedRecordError,
    ParseError,
    RawLogRecord,
    SourceValidationError,
    discover_log_files,
)
from log_cruncher.pipeline import setup_logging
from log_cruncher.storage import ReferentialIntegrityError, StorageError, get_backend

logger = logging.getLogger(__name__)


def validate_only(paths: list[str]) -> IngestionResult:
    """Decode and validate records without touching the database."""
    reader = FastlyLogReader()
    result = IngestionResult()

    for path in paths:
        for file_path in discover_log_files(path):
            try:
                for index, raw in enumerate(reader.read_file(file_path), start=1):
                    try:
                        if not isinstance(raw, dict):
                            raise MalformedRecordError("Record is not an object")
                        RawLogRecord.from_dict(raw)
                        result.ingested += 1
                    except MalformedRecordError as e:
                        result.failed += 1
                        result.add_error(f"{file_path} record {index}: {e}")
                result.files_processed += 1
            except (ParseError, OSError, EOFError) as e:
                result.files_failed += 1
                result.add_error(f"{file_path}: {e}")

    return result


def print_summary(result: IngestionResult, validate: bool) -> None:
    verb = "Valid" if validate else "Ingested"
    print()
    print("Ingestion summary")
    print("=" * 50)
    print(f"  Files processed: {result.files_processed}")
    print(f"  Files failed:    {result.files_failed}")
    print(f"  {verb + ' records:':<17}{result.ingested}")
    print(f"  Skipped records: {result.failed}")
    if result.duration_seconds is not None:
        print(f"  Duration:        {result.duration_seconds:.1f}s")
    if result.errors:
        print()
        print(f"First {min(len(result.errors), 10)} errors:")
        for error in result.errors[:10]:
            print(f"  - {error}")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Ingest Fastly access logs into the SQLite store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Ingest a directory of log files
  python scripts/ingest_logs.py logs/

  # Ingest into a specific database
  python scripts/ingest_logs.py logs/ --db-path data/access-logs.db

  # Check files without writing anything
  python scripts/ingest_logs.py logs/ --validate-only
        """,
    )

    parser.add_argument(
        "paths",
        nargs="+",
        help="Log files or directories to ingest",
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        help="Path to SQLite database (default: from settings)",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to YAML config file (default: config.yaml)",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        help="Decode and validate records without ingesting",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the summary as JSON",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    if args.validate_only:
        try:
            result = validate_only(args.paths)
        except SourceValidationError as e:
            logger.error(str(e))
            return 1
    else:
        settings = get_settings(args.config)
        db_path = args.db_path or Path(settings.sqlite_db_path)

        result = IngestionResult()
        try:
            with get_backend("sqlite", db_path=db_path) as backend:
                backend.initialize()
                ingester = Ingester(backend)
                for path in args.paths:
                    result.merge(ingester.ingest_path(path))
        except SourceValidationError as e:
            logger.error(str(e))
            return 1
        except ReferentialIntegrityError as e:
            # Corrupted store: stop at once, nothing more is written
            logger.error(f"Referential integrity failure, ingestion aborted: {e}")
            return 2
        except StorageError as e:
            logger.error(f"Storage failure: {e}")
            return 1

        result.completed_at = datetime.now(timezone.utc)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print_summary(result, args.validate_only)

    return 0 if result.files_failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
