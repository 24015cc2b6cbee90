"""
Pytest configuration and shared fixtures for unit tests.
"""

from datetime import datetime, timezone

import pytest

from log_cruncher.config import Settings
from log_cruncher.pipeline import NormalizedRow

FIXED_NOW = datetime(2024, 1, 10, 12, 0, 0, tzinfo=timezone.utc)

_row_ids = iter(range(1, 1_000_000))


def build_row(**overrides) -> NormalizedRow:
    """
    Build a NormalizedRow with sensible defaults.

    Any field can be overridden; `date` follows `time` unless given.
    """
    values = {
        "id": next(_row_ids),
        "status": 200,
        "client_ip": "192.0.2.1",
        "ipv6": False,
        "http2": True,
        "client_asn": 64500,
        "asn_name": "EXAMPLE-NET",
        "country_code": "IE",
        "cache_state": "HIT",
        "size": 1024,
        "time": FIXED_NOW,
        "duration": 0.01,
        "url_path": "/",
        "referer": None,
        "user_agent": "Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0",
    }
    values.update(overrides)
    values.setdefault("date", values["time"].date())
    return NormalizedRow(**values)


@pytest.fixture
def make_row():
    """Factory for NormalizedRow instances."""
    return build_row


@pytest.fixture
def fixed_now() -> datetime:
    """Reference time used for window calculations."""
    return FIXED_NOW


@pytest.fixture
def settings() -> Settings:
    """Default settings with the site's own domain configured."""
    return Settings(sqlite_db_path=":memory:", site_domains=["example.com"])
