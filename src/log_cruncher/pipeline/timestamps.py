"""
Timestamp normalization for request start times.

Older rows carry `request_start_time` in several textual forms (SQLite's
space-separated form, RFC 3339 with a `Z`, naive ISO strings, HTTP dates).
Comparing those as strings silently picks the wrong rows, so every value is
parsed into an aware UTC datetime at the read boundary, and new rows are
written in one canonical form.
"""

from datetime import datetime, timezone
from typing import Any

from dateutil import parser

# ISO 8601, always UTC, always with microseconds
CANONICAL_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"

# Shorter digit strings are more likely compact dates (20240107) than epochs
EPOCH_MIN_DIGITS = 10


def ensure_utc(dt: datetime) -> datetime:
    """Ensure datetime is timezone-aware and in UTC (naive means UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """
    Parse a stored or raw timestamp into an aware UTC datetime.

    Accepts datetimes, Unix epoch numbers (seconds, milliseconds or
    microseconds) and strings in any of the legacy textual forms. Epochs
    given as strings need at least EPOCH_MIN_DIGITS whole digits.
    Strings without a zone designator are taken to be UTC.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp
    """
    if value is None:
        raise ValueError("Timestamp is missing")

    if isinstance(value, datetime):
        return ensure_utc(value)

    if isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")

    if isinstance(value, (int, float)):
        return _from_epoch(value)

    text = str(value).strip()
    if not text:
        raise ValueError("Timestamp is empty")

    unsigned = text.lstrip("-")
    if unsigned.replace(".", "", 1).isdigit():
        if len(unsigned.split(".")[0]) < EPOCH_MIN_DIGITS:
            raise ValueError(f"Ambiguous numeric timestamp: {value!r}")
        return _from_epoch(float(text))

    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        pass

    try:
        return ensure_utc(parser.isoparse(text))
    except ValueError:
        pass

    try:
        # HTTP dates, e.g. "Sun, 07 Jan 2024 12:00:00 GMT"
        return ensure_utc(parser.parse(text))
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Unrecognized timestamp: {value!r}") from e


def _from_epoch(ts: float) -> datetime:
    try:
        if ts > 1e15:  # Microseconds
            return datetime.fromtimestamp(ts / 1e6, tz=timezone.utc)
        if ts > 1e12:  # Milliseconds
            return datetime.fromtimestamp(ts / 1000, tz=timezone.utc)
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    except (OverflowError, OSError) as e:
        raise ValueError(f"Epoch timestamp out of range: {ts!r}") from e


def canonical_timestamp(dt: datetime) -> str:
    """Format a datetime in the storage format (naive means UTC)."""
    return ensure_utc(dt).strftime(CANONICAL_FORMAT)
