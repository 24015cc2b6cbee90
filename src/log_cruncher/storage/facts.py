"""
Fact Store: the append-only table of observed requests.

Fact rows reference dictionary entries by id. Appending is the only
mutation; corrections arrive as new facts, never as edits.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from ..config.constants import (
    DICT_ASN,
    DICT_CLIENT_IP,
    DICT_PATH,
    DICT_REFERER,
    DICT_USER_AGENT,
    TABLE_REQUESTS,
)
from .base import ConstraintViolation, ReferentialIntegrityError, StorageBackend
from .dictionaries import DictionaryStore, get_dictionary

logger = logging.getLogger(__name__)


@dataclass
class RequestFact:
    """
    One observed request, with dimension values replaced by dictionary ids.

    `request_start_time` may be an aware datetime or an already canonical
    timestamp string; datetimes are canonicalized on append.
    """

    url_path_ref: Optional[int]
    status: int
    response_bytes: int
    response_duration: float
    request_start_time: Union[datetime, str]
    client_ip_ref: Optional[int] = None
    asn_ref: Optional[int] = None
    referer_ref: Optional[int] = None
    user_agent_ref: Optional[int] = None
    country_code: Optional[str] = None
    requests: Optional[int] = None
    cache_state: Optional[str] = None
    ipv6: bool = False
    http2: bool = False
    id: Optional[int] = None


# fact field -> (requests column, dictionary name)
REFERENCE_FIELDS: dict[str, tuple[str, str]] = {
    "client_ip_ref": ("client_ip", DICT_CLIENT_IP),
    "asn_ref": ("asn", DICT_ASN),
    "url_path_ref": ("url_path", DICT_PATH),
    "referer_ref": ("referer", DICT_REFERER),
    "user_agent_ref": ("user_agent", DICT_USER_AGENT),
}

REQUIRED_REFERENCES = ["url_path_ref"]

INSERT_FACT_SQL = f"""
    INSERT INTO {TABLE_REQUESTS} (
        client_ip, asn, country_code, requests, ipv6, http2, cache_state,
        status, response_bytes, response_duration, request_start_time,
        url_path, referer, user_agent
    ) VALUES (
        :client_ip, :asn, :country_code, :requests, :ipv6, :http2, :cache_state,
        :status, :response_bytes, :response_duration, :request_start_time,
        :url_path, :referer, :user_agent
    )
"""


class FactStore:
    """Append-only access to the requests table."""

    def __init__(self, backend: StorageBackend):
        self._backend = backend
        self._dictionaries = DictionaryStore(backend)

    def append(self, fact: RequestFact) -> int:
        """
        Append a fact row and return its id.

        Every non-null reference must resolve, and the path reference must
        be present. Nothing is written when a check fails.

        Raises:
            ReferentialIntegrityError: A reference is missing or unresolvable
        """
        self._check_references(fact)

        params = self._to_params(fact)
        try:
            fact_id = self._backend.insert(INSERT_FACT_SQL, params)
        except ConstraintViolation as e:
            # Foreign keys catch anything that slipped past the checks above,
            # e.g. a dictionary row removed out from under us.
            if e.kind == "foreign_key":
                raise ReferentialIntegrityError(
                    f"Fact rejected by foreign key constraint: {e}"
                ) from e
            raise

        fact.id = fact_id
        return fact_id

    def _check_references(self, fact: RequestFact) -> None:
        for field_name in REQUIRED_REFERENCES:
            if getattr(fact, field_name) is None:
                raise ReferentialIntegrityError(
                    "Required reference is missing", field=field_name, value=None
                )

        for field_name, (_, dictionary) in REFERENCE_FIELDS.items():
            ref = getattr(fact, field_name)
            if ref is None:
                continue
            if not self._dictionaries.exists(dictionary, ref):
                raise ReferentialIntegrityError(
                    f"Reference does not resolve in the {dictionary} dictionary",
                    field=field_name,
                    value=ref,
                )

    @staticmethod
    def _to_params(fact: RequestFact) -> dict:
        from ..pipeline.timestamps import canonical_timestamp, parse_timestamp

        start_time = fact.request_start_time
        if isinstance(start_time, str):
            start_time = parse_timestamp(start_time)

        return {
            "client_ip": fact.client_ip_ref,
            "asn": fact.asn_ref,
            "country_code": fact.country_code,
            "requests": fact.requests,
            "ipv6": int(bool(fact.ipv6)),
            "http2": int(bool(fact.http2)),
            "cache_state": fact.cache_state,
            "status": fact.status,
            "response_bytes": fact.response_bytes,
            "response_duration": fact.response_duration,
            "request_start_time": canonical_timestamp(start_time),
            "url_path": fact.url_path_ref,
            "referer": fact.referer_ref,
            "user_agent": fact.user_agent_ref,
        }

    def count(self) -> int:
        """Number of fact rows."""
        return self._backend.get_table_row_count(TABLE_REQUESTS)

    def orphan_counts(self) -> dict[str, int]:
        """
        Count fact rows per reference column whose id does not resolve.

        All counts are zero in a healthy store.
        """
        counts = {}
        for field_name, (column, dictionary) in REFERENCE_FIELDS.items():
            d = get_dictionary(dictionary)
            rows = self._backend.query(
                f"""
                SELECT COUNT(*) AS orphans
                FROM {TABLE_REQUESTS} r
                LEFT JOIN {d.table} d ON r.{column} = d.id
                WHERE r.{column} IS NOT NULL AND d.id IS NULL
                """
            )
            counts[field_name] = rows[0]["orphans"] if rows else 0

        orphaned = {k: v for k, v in counts.items() if v}
        if orphaned:
            logger.error(f"Orphaned fact references found: {orphaned}")
        return counts
