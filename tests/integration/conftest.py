"""
Shared fixtures for integration tests.

Provides:
- Temporary SQLite database for isolated testing
- Sample Fastly record generator fixtures
- Ingester and report engine fixtures
"""

import random
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from log_cruncher.config import Settings
from log_cruncher.ingestion import Ingester
from log_cruncher.reporting import ReportEngine
from log_cruncher.storage import get_backend

# Reference "now" for every window calculation in these tests
NOW = datetime(2024, 1, 10, 12, 0, 0, tzinfo=timezone.utc)

# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================


def make_record(**overrides) -> dict:
    """A valid raw record (RawLogRecord field names), with overrides."""
    record = {
        "url_path": "/",
        "status": 200,
        "response_bytes": 1024,
        "response_duration": 0.01,
        "request_start_time": (NOW - timedelta(hours=1)).isoformat(),
        "client_ip": "192.0.2.1",
        "asn": 64500,
        "country_code": "IE",
        "http2": True,
        "referer": None,
        "user_agent": "Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0",
        "cache_state": "HIT",
    }
    record.update(overrides)
    return record


def generate_sample_records(
    num_records: int = 100,
    days: int = 3,
    seed: int = 42,
) -> list[dict]:
    """
    Generate sample access-log records for testing.

    Args:
        num_records: Number of records to generate
        days: Records are spread over this many days before NOW
        seed: Random seed for reproducibility (default: 42)

    Returns:
        List of record dictionaries
    """
    rng = random.Random(seed)

    paths = [
        "/",
        "/about/",
        "/writing/hello-world/",
        "/writing/sqlite-tricks/",
        "/writing/index.xml",
        "/wp-login.php",
    ]
    agents = [
        "Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0",
        "Mozilla/5.0 (Macintosh) Safari/605.1.15",
        "Blackbox Exporter/0.24.0",
        "curl/8.4.0",
    ]
    referers = [None, None, "https://news.ycombinator.com/", "https://example.com/"]
    statuses = [200, 200, 200, 200, 304, 404, 500]  # Weighted toward success

    records = []
    for _ in range(num_records):
        offset = timedelta(seconds=rng.randint(0, days * 86400 - 1))
        records.append(
            make_record(
                url_path=rng.choice(paths),
                status=rng.choice(statuses),
                response_bytes=rng.randint(0, 50_000),
                response_duration=round(rng.uniform(0, 0.5), 4),
                request_start_time=(NOW - offset).isoformat(),
                client_ip=f"10.0.{rng.randint(0, 3)}.{rng.randint(1, 254)}",
                asn=rng.choice([64500, 64501, 64502]),
                referer=rng.choice(referers),
                user_agent=rng.choice(agents),
            )
        )
    return records


@pytest.fixture
def record_factory():
    """Factory for single raw records."""
    return make_record


@pytest.fixture
def sample_records() -> list[dict]:
    """Generate 100 sample records for testing."""
    return generate_sample_records(num_records=100)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Create a temporary database path."""
    return tmp_path / "test_access_logs.db"


@pytest.fixture
def sqlite_backend(temp_db_path: Path):
    """
    Create an initialized SQLite backend with temporary database.

    Automatically cleans up after test.
    """
    backend = get_backend("sqlite", db_path=temp_db_path)
    backend.initialize()
    yield backend
    backend.close()


@pytest.fixture
def ingester(sqlite_backend) -> Ingester:
    return Ingester(sqlite_backend)


@pytest.fixture
def ingester_with_data(ingester, sample_records):
    """
    Ingester whose backend already holds the sample records.

    Returns tuple of (ingester, records_ingested).
    """
    result = ingester.ingest_many(sample_records)
    return ingester, result.ingested


# =============================================================================
# REPORTING FIXTURES
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with the site's own domain configured."""
    return Settings(site_domains=["example.com"])


@pytest.fixture
def report_engine(sqlite_backend, settings) -> ReportEngine:
    """Report engine with a fixed reference time."""
    return ReportEngine(sqlite_backend, settings=settings, now=NOW)


@pytest.fixture
def now() -> datetime:
    """Reference time shared by the sample records and the report engine."""
    return NOW
