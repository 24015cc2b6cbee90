"""
Normalization Join: fact rows with every dictionary reference resolved.

The join is never materialized. Each call to resolve_all() runs the query
again against the current fact and dictionary tables, so downstream
filters always see up-to-date data.
"""

import logging
from contextlib import closing
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterator, Optional

from dateutil import tz

from ..config.constants import (
    DICT_ASN,
    DICT_CLIENT_IP,
    DICT_PATH,
    DICT_REFERER,
    DICT_USER_AGENT,
    TABLE_ASN_NAMES,
    TABLE_AUTONOMOUS_SYSTEMS,
    TABLE_CLIENT_IPS,
    TABLE_PATHS,
    TABLE_REFERERS,
    TABLE_REQUESTS,
    TABLE_USER_AGENTS,
)
from ..storage import NotFoundError, StorageBackend, StorageError
from .timestamps import parse_timestamp

logger = logging.getLogger(__name__)

# (reference column, resolved column, dictionary name)
REFERENCES = [
    ("client_ip_ref", "client_ip", DICT_CLIENT_IP),
    ("asn_ref", "client_asn", DICT_ASN),
    ("url_path_ref", "url_path", DICT_PATH),
    ("referer_ref", "referer", DICT_REFERER),
    ("user_agent_ref", "user_agent", DICT_USER_AGENT),
]


@dataclass(frozen=True)
class NormalizedRow:
    """
    A fact row with its references replaced by dictionary values.

    A null reference resolves to None; the row itself is never dropped.
    `time` is an aware UTC datetime and `date` its calendar date in the
    store's time zone.
    """

    id: int
    status: int
    client_ip: Optional[str]
    ipv6: bool
    http2: bool
    client_asn: Optional[int]
    asn_name: Optional[str]
    country_code: Optional[str]
    cache_state: Optional[str]
    size: int
    time: datetime
    duration: float
    url_path: Optional[str]
    referer: Optional[str]
    user_agent: Optional[str]
    date: date


# Every reference is a LEFT JOIN, including the non-null path, so a
# dangling reference keeps its row and can be reported by id.
RESOLVE_ALL_SQL = f"""
    SELECT
        r.id AS id,
        r.status AS status,
        c.address AS client_ip,
        r.ipv6 AS ipv6,
        r.http2 AS http2,
        a.asn AS client_asn,
        n.name AS asn_name,
        r.country_code AS country_code,
        r.cache_state AS cache_state,
        r.response_bytes AS size,
        r.request_start_time AS time,
        r.response_duration AS duration,
        p.path AS url_path,
        rf.referer AS referer,
        u.user_agent AS user_agent,
        r.client_ip AS client_ip_ref,
        r.asn AS asn_ref,
        r.url_path AS url_path_ref,
        r.referer AS referer_ref,
        r.user_agent AS user_agent_ref
    FROM {TABLE_REQUESTS} r
    LEFT JOIN {TABLE_CLIENT_IPS} c ON r.client_ip = c.id
    LEFT JOIN {TABLE_AUTONOMOUS_SYSTEMS} a ON r.asn = a.id
    LEFT JOIN {TABLE_ASN_NAMES} n ON n.asn = a.asn
    LEFT JOIN {TABLE_PATHS} p ON r.url_path = p.id
    LEFT JOIN {TABLE_REFERERS} rf ON r.referer = rf.id
    LEFT JOIN {TABLE_USER_AGENTS} u ON r.user_agent = u.id
    ORDER BY r.id
"""


class NormalizationJoin:
    """
    Read-only, restartable view over the fact table.

    Iterating the join (or calling resolve_all()) starts a fresh query.
    A reference that does not resolve raises NotFoundError: the store's
    integrity rules make that a sign of corruption, not of missing data.
    """

    def __init__(self, backend: StorageBackend, timezone: str = "UTC"):
        zone = tz.gettz(timezone)
        if zone is None:
            raise ValueError(f"Unknown time zone: {timezone!r}")
        self._backend = backend
        self.timezone = timezone
        self._zone = zone

    def resolve_all(self) -> Iterator[NormalizedRow]:
        """
        Lazily yield every fact row, resolved, in fact-id order.

        Closing this generator, or a row failing to resolve, releases the
        underlying cursor straight away.
        """
        records = self._backend.iter_query(RESOLVE_ALL_SQL)
        with closing(records):
            for record in records:
                yield self._to_row(record)

    def __iter__(self) -> Iterator[NormalizedRow]:
        return self.resolve_all()

    def _to_row(self, record: dict) -> NormalizedRow:
        for ref_column, value_column, dictionary in REFERENCES:
            if record[ref_column] is not None and record[value_column] is None:
                raise NotFoundError(dictionary, record[ref_column])

        try:
            time = parse_timestamp(record["time"])
        except ValueError as e:
            raise StorageError(
                f"Fact row {record['id']} has an unreadable request_start_time: {e}"
            ) from e

        return NormalizedRow(
            id=record["id"],
            status=record["status"],
            client_ip=record["client_ip"],
            ipv6=bool(record["ipv6"]),
            http2=bool(record["http2"]),
            client_asn=record["client_asn"],
            asn_name=record["asn_name"],
            country_code=record["country_code"],
            cache_state=record["cache_state"],
            size=record["size"],
            time=time,
            duration=record["duration"],
            url_path=record["url_path"],
            referer=record["referer"],
            user_agent=record["user_agent"],
            date=time.astimezone(self._zone).date(),
        )
