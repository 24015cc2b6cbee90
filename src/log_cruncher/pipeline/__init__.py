"""Read side of the store: normalization join, filters and named views."""

from .filters import (
    AllOf,
    AutomatedProbeFilter,
    ContentCategoryFilter,
    ExternalRefererFilter,
    JunkResponseFilter,
    ProbePathMatcher,
    RowFilter,
    TimeWindowFilter,
    all_of,
    is_self_referer,
)
from .logging_setup import setup_logging
from .normalize import NormalizationJoin, NormalizedRow
from .timestamps import canonical_timestamp, ensure_utc, parse_timestamp
from .views import FilterPipeline

__all__ = [
    # Normalization
    "NormalizationJoin",
    "NormalizedRow",
    # Timestamps
    "parse_timestamp",
    "canonical_timestamp",
    "ensure_utc",
    # Filters
    "RowFilter",
    "AllOf",
    "all_of",
    "AutomatedProbeFilter",
    "JunkResponseFilter",
    "TimeWindowFilter",
    "ContentCategoryFilter",
    "ExternalRefererFilter",
    "ProbePathMatcher",
    "is_self_referer",
    # Views
    "FilterPipeline",
    # Logging
    "setup_logging",
]
