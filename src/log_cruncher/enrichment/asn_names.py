"""
ASN name enrichment.

Log records carry the client's autonomous system number but rarely its
name. Names are looked up after ingestion: first in PeeringDB, then, for
networks PeeringDB does not know, in the Spamhaus ASN-DROP list (networks
that should not be routed or peered with at all). Names go to the
`asn_names` table; the ASN dictionary itself is never modified.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import httpx

from ..config.constants import (
    DROPLIST_SPAMHAUS,
    TABLE_ASN_NAMES,
    TABLE_AUTONOMOUS_SYSTEMS,
)
from ..config.settings import EnrichmentSettings, get_settings
from ..monitoring import CircuitBreaker, RetryConfig, RetryManager
from ..pipeline.timestamps import canonical_timestamp
from ..storage import StorageBackend

logger = logging.getLogger(__name__)

USER_AGENT = "log-cruncher (ASN name lookup)"


class EnrichmentError(Exception):
    """Raised when an enrichment source cannot be read."""

    pass


@dataclass
class CatchupResult:
    """Outcome of one ASN catch-up run."""

    named: int = 0
    droplisted: int = 0
    unknown: list[int] = field(default_factory=list)

    @property
    def looked_up(self) -> int:
        return self.named + self.droplisted + len(self.unknown)

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/serialization."""
        return {
            "looked_up": self.looked_up,
            "named": self.named,
            "droplisted": self.droplisted,
            "unknown": list(self.unknown),
        }


class AsnNameResolver:
    """
    Fills in names for ASNs seen in the logs.

    Example:
        with get_backend() as backend, AsnNameResolver(backend) as resolver:
            result = resolver.catchup()
    """

    def __init__(
        self,
        backend: StorageBackend,
        client: Optional[httpx.Client] = None,
        settings: Optional[EnrichmentSettings] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        """
        Args:
            backend: Initialized storage backend
            client: HTTP client to use; one is created (and closed) if omitted
            settings: Endpoints and limits (defaults to get_settings())
            retry_config: Backoff policy (defaults to settings.max_retries)
        """
        self._backend = backend
        self.settings = settings or get_settings().enrichment
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=self.settings.timeout_seconds,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        )

        retry_config = retry_config or RetryConfig(
            max_retries=self.settings.max_retries
        )
        # A PeeringDB outage should fail fast rather than once per ASN
        self._peeringdb_retry = RetryManager(
            config=retry_config, circuit_breaker=CircuitBreaker(failure_threshold=5)
        )
        self._spamhaus_retry = RetryManager(config=retry_config)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "AsnNameResolver":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _get(self, url: str) -> httpx.Response:
        response = self._client.get(url)
        response.raise_for_status()
        return response

    def unnamed_asns(self) -> list[int]:
        """ASNs present in the dictionary without a known name."""
        rows = self._backend.query(
            f"""
            SELECT a.asn AS asn
            FROM {TABLE_AUTONOMOUS_SYSTEMS} a
            LEFT JOIN {TABLE_ASN_NAMES} n ON n.asn = a.asn
            WHERE n.name IS NULL
            ORDER BY a.asn
            """
        )
        return [row["asn"] for row in rows]

    def lookup_peeringdb(self, asn: int) -> Optional[str]:
        """
        Look up an ASN's name in PeeringDB's as-set API.

        The response's `data` is a list of {asn: as-set name} mappings.
        Returns None if PeeringDB has no name or cannot be reached.
        """
        url = self.settings.peeringdb_url.format(asn=asn)
        result = self._peeringdb_retry.execute_with_retry(self._get, url)
        if not result.success:
            logger.warning(
                f"Could not get results for ASN {asn} from PeeringDB: "
                f"{result.last_error}"
            )
            return None

        try:
            payload = result.result.json()
        except ValueError as e:
            logger.warning(f"Undecodable PeeringDB response for ASN {asn}: {e}")
            return None

        wanted = str(asn)
        for entry in payload.get("data", []) if isinstance(payload, dict) else []:
            if isinstance(entry, dict) and entry.get(wanted):
                return entry[wanted]

        logger.debug(f"PeeringDB has no name for ASN {asn}")
        return None

    def fetch_drop_list(self) -> dict[int, str]:
        """
        Download the Spamhaus ASN-DROP list as {asn: name}.

        The list is newline-delimited JSON: one {"asn", "asname", ...}
        object per network plus a metadata line carrying the copyright.

        Raises:
            EnrichmentError: If the list cannot be downloaded or decoded
        """
        result = self._spamhaus_retry.execute_with_retry(
            self._get, self.settings.spamhaus_url
        )
        if not result.success:
            raise EnrichmentError(
                f"Could not get DROP list from Spamhaus: {result.last_error}"
            ) from result.last_error

        drop_list = {}
        for line_number, line in enumerate(result.result.text.splitlines(), start=1):
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
                if "asn" in entry:
                    drop_list[int(entry["asn"])] = entry.get("asname") or ""
                elif "copyright" in entry:
                    # Spamhaus asks that the copyright travel with its data
                    logger.info(f"Using data from Spamhaus: {entry['copyright']}")
            except (ValueError, TypeError) as e:
                raise EnrichmentError(
                    f"Invalid DROP list entry on line {line_number}: {e}"
                ) from e

        logger.info(f"Loaded {len(drop_list)} ASNs from the Spamhaus DROP list")
        return drop_list

    def store_name(self, asn: int, name: str, droplist: Optional[str] = None) -> None:
        """Record (or replace) the name of an ASN."""
        self._backend.execute(
            f"""
            INSERT INTO {TABLE_ASN_NAMES} (asn, name, droplist, updated_at)
            VALUES (:asn, :name, :droplist, :updated_at)
            ON CONFLICT (asn) DO UPDATE SET
                name = excluded.name,
                droplist = excluded.droplist,
                updated_at = excluded.updated_at
            """,
            {
                "asn": asn,
                "name": name,
                "droplist": droplist,
                "updated_at": canonical_timestamp(datetime.now(timezone.utc)),
            },
        )

    def catchup(self) -> CatchupResult:
        """
        Name every ASN that has no name yet.

        Raises:
            EnrichmentError: If PeeringDB left ASNs unnamed and the DROP
                list is unavailable; names found so far stay stored
        """
        result = CatchupResult()
        asns = self.unnamed_asns()
        logger.info(f"Looking up names for {len(asns)} ASNs")

        for asn in asns:
            name = self.lookup_peeringdb(asn)
            if name:
                self.store_name(asn, name)
                result.named += 1
            else:
                result.unknown.append(asn)

        if not result.unknown:
            return result

        drop_list = self.fetch_drop_list()
        still_unknown = []
        for asn in result.unknown:
            name = drop_list.get(asn)
            if name is None:
                still_unknown.append(asn)
                continue
            self.store_name(asn, name, droplist=DROPLIST_SPAMHAUS)
            result.droplisted += 1
            logger.info(f"ASN {asn} ({name}) is on the Spamhaus DROP list")

        result.unknown = still_unknown
        logger.info(
            f"ASN catch-up done: {result.named} named, "
            f"{result.droplisted} droplisted, {len(result.unknown)} unknown"
        )
        return result
