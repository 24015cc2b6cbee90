"""
Row predicates for the filter pipeline.

Every filter is a pure predicate over a NormalizedRow: calling it returns
True to keep the row. Filters never rewrite or reorder rows, and because
they are conjunctive they can be combined in any order with all_of().

The deny-lists behind them are heuristics. They remove traffic that a
cheap pattern match can identify and make no claim to catch everything.
"""

import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Iterable, Iterator, Optional
from urllib.parse import urlsplit

from .normalize import NormalizedRow
from .timestamps import ensure_utc


class RowFilter(ABC):
    """Base class for row predicates."""

    name: str = "filter"

    @abstractmethod
    def __call__(self, row: NormalizedRow) -> bool:
        """Return True to keep the row."""
        pass

    def apply(self, rows: Iterable[NormalizedRow]) -> Iterator[NormalizedRow]:
        """Lazily keep the rows this filter accepts, in their original order."""
        return (row for row in rows if self(row))

    def __and__(self, other: "RowFilter") -> "RowFilter":
        return all_of(self, other)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class AllOf(RowFilter):
    """Logical AND of several filters."""

    name = "all_of"

    def __init__(self, predicates: Iterable[RowFilter]):
        self.predicates = tuple(predicates)

    def __call__(self, row: NormalizedRow) -> bool:
        return all(predicate(row) for predicate in self.predicates)

    def __repr__(self) -> str:
        return f"AllOf({list(self.predicates)!r})"


def all_of(*predicates: RowFilter) -> RowFilter:
    """Combine predicates by logical AND (no predicates keeps every row)."""
    flattened = []
    for predicate in predicates:
        if isinstance(predicate, AllOf):
            flattened.extend(predicate.predicates)
        else:
            flattened.append(predicate)
    return AllOf(flattened)


class AutomatedProbeFilter(RowFilter):
    """
    Drop synthetic monitoring traffic (health checks, link checkers).

    Matches user agents by case-insensitive substring. Rows without a user
    agent are kept: they match nothing on the deny-list.
    """

    name = "automated_probe"

    def __init__(self, user_agent_substrings: Iterable[str]):
        self.user_agent_substrings = [s.lower() for s in user_agent_substrings if s]

    def __call__(self, row: NormalizedRow) -> bool:
        if not row.user_agent:
            return True
        agent = row.user_agent.lower()
        return not any(s in agent for s in self.user_agent_substrings)


class JunkResponseFilter(RowFilter):
    """Drop not-found noise and user agents with known spoofed signatures."""

    name = "junk_response"

    def __init__(
        self,
        statuses: Iterable[int] = (404,),
        spoofed_agent_patterns: Iterable[str] = (),
    ):
        self.statuses = frozenset(statuses)
        self.spoofed_agent_patterns = [re.compile(p) for p in spoofed_agent_patterns]

    def __call__(self, row: NormalizedRow) -> bool:
        if row.status in self.statuses:
            return False
        if row.user_agent:
            return not any(p.search(row.user_agent) for p in self.spoofed_agent_patterns)
        return True


class TimeWindowFilter(RowFilter):
    """
    Keep rows no older than `window_days` before `now`.

    A row exactly on the boundary is kept. Comparison is between aware
    datetimes, never between strings.
    """

    name = "time_window"

    def __init__(self, window_days: float = 7, now: Optional[datetime] = None):
        if window_days < 0:
            raise ValueError(f"window_days must be >= 0, got {window_days}")
        self.window_days = window_days
        self.now = ensure_utc(now) if now else datetime.now(timezone.utc)
        self.cutoff = self.now - timedelta(days=window_days)

    def __call__(self, row: NormalizedRow) -> bool:
        return row.time >= self.cutoff


class ContentCategoryFilter(RowFilter):
    """
    Keep rows whose path is long-form content.

    The path must match `pattern` (a regular expression, searched) and must
    not end with any of `excluded_suffixes`, however well it matches.
    """

    name = "content_category"

    def __init__(self, pattern: str, excluded_suffixes: Iterable[str] = ()):
        self.pattern = re.compile(pattern)
        self.excluded_suffixes = tuple(excluded_suffixes)

    def __call__(self, row: NormalizedRow) -> bool:
        path = row.url_path
        if not path or not self.pattern.search(path):
            return False
        return not (self.excluded_suffixes and path.endswith(self.excluded_suffixes))


class ProbePathMatcher:
    """
    Recognize vulnerability-scanner probe paths (e.g. /wp-login.php).

    The error report drops matching rows and the scanning-network report
    keeps only matching rows; both use one matcher so the two row sets
    never overlap.
    """

    def __init__(self, prefixes: Iterable[str] = (), suffixes: Iterable[str] = ()):
        self.prefixes = tuple(prefixes)
        self.suffixes = tuple(suffixes)

    def matches(self, path: Optional[str]) -> bool:
        if not path:
            return False
        return bool(
            (self.prefixes and path.startswith(self.prefixes))
            or (self.suffixes and path.endswith(self.suffixes))
        )

    def __call__(self, row: NormalizedRow) -> bool:
        return self.matches(row.url_path)


def is_self_referer(referer: Optional[str], domains: Iterable[str]) -> bool:
    """
    True if the referer points at one of the site's own domains.

    URL referers are compared by host (the domain or any subdomain of it).
    Anything that does not parse as a URL, malformed ones included, falls
    back to a substring check.
    """
    if not referer:
        return False
    domains = [d.lower().strip(".") for d in domains if d]
    if not domains:
        return False

    host = None
    if "://" in referer:
        try:
            host = urlsplit(referer).hostname
        except ValueError:
            pass  # e.g. an unbalanced IPv6 bracket
    if host:
        host = host.lower().rstrip(".")
        return any(host == d or host.endswith("." + d) for d in domains)

    lowered = referer.lower()
    return any(d in lowered for d in domains)


class ExternalRefererFilter(RowFilter):
    """Keep rows with a non-empty referer from outside the site."""

    name = "external_referer"

    def __init__(self, site_domains: Iterable[str]):
        self.site_domains = list(site_domains)

    def __call__(self, row: NormalizedRow) -> bool:
        if not row.referer or not row.referer.strip():
            return False
        return not is_self_referer(row.referer, self.site_domains)
