"""Post-ingestion enrichment of stored dimensions."""

from .asn_names import AsnNameResolver, CatchupResult, EnrichmentError

__all__ = [
    "AsnNameResolver",
    "CatchupResult",
    "EnrichmentError",
]
