"""
Filter pipeline: named, chained views over the normalized rows.

Stages are listed in order; the view for a stage applies every predicate
up to and including it. The default chain is:

    resolved -> without_probes -> without_junk -> recent -> articles

Reports built on an early stage see more raw traffic than reports built on
a later one.
"""

import logging
from datetime import datetime
from typing import Iterable, Iterator, Optional

from ..config.constants import (
    VIEW_ARTICLES,
    VIEW_RECENT,
    VIEW_RESOLVED,
    VIEW_WITHOUT_JUNK,
    VIEW_WITHOUT_PROBES,
)
from ..config.settings import Settings
from .filters import (
    AutomatedProbeFilter,
    ContentCategoryFilter,
    JunkResponseFilter,
    RowFilter,
    TimeWindowFilter,
    all_of,
)
from .normalize import NormalizedRow

logger = logging.getLogger(__name__)


def _closing_source(
    predicate: RowFilter, rows: Iterator[NormalizedRow]
) -> Iterator[NormalizedRow]:
    try:
        yield from predicate.apply(rows)
    finally:
        close = getattr(rows, "close", None)
        if close is not None:
            close()


class FilterPipeline:
    """
    Ordered chain of named filter stages over a row source.

    The source is any re-iterable of NormalizedRow (typically a
    NormalizationJoin); every view() call iterates it afresh.

    Example:
        pipeline = (
            FilterPipeline(join)
            .add_stage("without_probes", AutomatedProbeFilter(["blackbox"]))
            .add_stage("recent", TimeWindowFilter(7))
        )
        for row in pipeline.view("recent"):
            ...
    """

    def __init__(self, source: Iterable[NormalizedRow]):
        self._source = source
        self._stages: list[tuple[str, Optional[RowFilter]]] = [(VIEW_RESOLVED, None)]

    def add_stage(self, name: str, predicate: RowFilter) -> "FilterPipeline":
        """Append a stage; returns self for chaining."""
        if name in self.stage_names:
            raise ValueError(f"Duplicate filter stage: '{name}'")
        self._stages.append((name, predicate))
        return self

    @property
    def stage_names(self) -> list[str]:
        return [name for name, _ in self._stages]

    def predicates(self, name: str) -> list[RowFilter]:
        """The predicates a row must pass to appear in the named view."""
        if name not in self.stage_names:
            raise ValueError(
                f"Unknown view: '{name}'. Available: {', '.join(self.stage_names)}"
            )
        chain = []
        for stage_name, predicate in self._stages:
            if predicate is not None:
                chain.append(predicate)
            if stage_name == name:
                break
        return chain

    def predicate(self, name: str) -> RowFilter:
        """All of a view's predicates combined into one."""
        return all_of(*self.predicates(name))

    def view(self, name: str) -> Iterator[NormalizedRow]:
        """
        Lazily yield the rows of the named view, in source order.

        An unknown name fails here rather than on first iteration. Closing the
        returned generator also closes the source iterator.
        """
        predicate = self.predicate(name)
        logger.debug(f"Building view '{name}' with {predicate!r}")
        return _closing_source(predicate, iter(self._source))

    @classmethod
    def from_settings(
        cls,
        source: Iterable[NormalizedRow],
        settings: Settings,
        now: Optional[datetime] = None,
        window_days: Optional[int] = None,
    ) -> "FilterPipeline":
        """
        Build the standard chain from configured deny-lists.

        Args:
            source: Row source, usually a NormalizationJoin
            settings: Application settings (filter deny-lists, defaults)
            now: Reference time for the window (default: current time)
            window_days: Window length (default: settings.reports.window_days)
        """
        filters = settings.filters
        if window_days is None:
            window_days = settings.reports.window_days

        return (
            cls(source)
            .add_stage(
                VIEW_WITHOUT_PROBES, AutomatedProbeFilter(filters.probe_user_agents)
            )
            .add_stage(
                VIEW_WITHOUT_JUNK,
                JunkResponseFilter(
                    filters.junk_statuses, filters.spoofed_user_agent_patterns
                ),
            )
            .add_stage(VIEW_RECENT, TimeWindowFilter(window_days, now=now))
            .add_stage(
                VIEW_ARTICLES,
                ContentCategoryFilter(
                    filters.article_path_pattern, filters.feed_path_suffixes
                ),
            )
        )
