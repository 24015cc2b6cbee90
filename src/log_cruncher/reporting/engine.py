"""
Reporting engine: named aggregate reports over the filtered views.

Every report follows one pattern: take a view from the filter pipeline,
optionally narrow it further, group by a key, count, sort by count
descending and keep the top N. Values are never truncated here; that is
left to rendering, so long values sharing a prefix stay distinct groups.
"""

import logging
from contextlib import closing
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Iterable, Optional

import pandas as pd

from ..config.constants import (
    REPORT_AGENTS,
    REPORT_ARTICLES,
    REPORT_ARTICLES_PER_DAY,
    REPORT_ERRORS,
    REPORT_PAGES,
    REPORT_REFERERS,
    REPORT_SCANNING_ASNS,
    REPORT_TRAFFIC_COUNT,
    VIEW_ARTICLES,
    VIEW_RECENT,
)
from ..config.settings import Settings, get_settings
from ..pipeline import (
    ExternalRefererFilter,
    FilterPipeline,
    NormalizationJoin,
    NormalizedRow,
    ProbePathMatcher,
    RowFilter,
)
from ..storage import StorageBackend, StorageError
from .params import ReportError, ReportParams, ReportResult, UnknownReportError
from .ranking import COUNT_COLUMN, count_top_n, top_k_per_partition

logger = logging.getLogger(__name__)

ROW_COLUMNS = [f.name for f in fields(NormalizedRow)]


class ErrorResponseFilter(RowFilter):
    """Keep error responses a legitimate client could trigger."""

    name = "error_response"

    def __init__(self, probe_paths: ProbePathMatcher, min_status: int = 400):
        self.probe_paths = probe_paths
        self.min_status = min_status

    def __call__(self, row: NormalizedRow) -> bool:
        return row.status >= self.min_status and not self.probe_paths(row)


class ProbeTrafficFilter(RowFilter):
    """Keep requests for vulnerability-probe paths, whatever their status."""

    name = "probe_traffic"

    def __init__(self, probe_paths: ProbePathMatcher):
        self.probe_paths = probe_paths

    def __call__(self, row: NormalizedRow) -> bool:
        return self.probe_paths(row)


def _traffic_count(frame: pd.DataFrame, params: ReportParams) -> pd.DataFrame:
    return pd.DataFrame({"traffic": [len(frame)]})


def _top_n(frame: pd.DataFrame, params: ReportParams, keys: list[str]) -> pd.DataFrame:
    return count_top_n(frame, keys, params.top_n)


def _per_day_top_k(frame: pd.DataFrame, params: ReportParams) -> pd.DataFrame:
    return top_k_per_partition(frame, "date", ["url_path"], params.per_day_k)


@dataclass(frozen=True)
class ReportDefinition:
    """
    A named report.

    Attributes:
        aggregate: Turns the (narrowed) view frame into the result frame
        row_filter: Builds an extra predicate from the engine, if any
    """

    name: str
    description: str
    columns: list[str]
    aggregate: Callable[[pd.DataFrame, ReportParams], pd.DataFrame]
    default_view: str = VIEW_RECENT
    row_filter: Optional[Callable[["ReportEngine"], RowFilter]] = None


REPORTS: dict[str, ReportDefinition] = {
    d.name: d
    for d in [
        ReportDefinition(
            REPORT_TRAFFIC_COUNT,
            "Total requests in the window",
            ["traffic"],
            _traffic_count,
        ),
        ReportDefinition(
            REPORT_AGENTS,
            "Top user agents",
            ["user_agent", COUNT_COLUMN],
            partial(_top_n, keys=["user_agent"]),
        ),
        ReportDefinition(
            REPORT_REFERERS,
            "Top external referers",
            ["referer", COUNT_COLUMN],
            partial(_top_n, keys=["referer"]),
            row_filter=lambda engine: ExternalRefererFilter(
                engine.settings.site_domains
            ),
        ),
        ReportDefinition(
            REPORT_PAGES,
            "Top pages",
            ["url_path", COUNT_COLUMN],
            partial(_top_n, keys=["url_path"]),
        ),
        ReportDefinition(
            REPORT_ARTICLES,
            "Top articles",
            ["url_path", COUNT_COLUMN],
            partial(_top_n, keys=["url_path"]),
            default_view=VIEW_ARTICLES,
        ),
        ReportDefinition(
            REPORT_ARTICLES_PER_DAY,
            "Top articles per day",
            ["date", "url_path", COUNT_COLUMN],
            _per_day_top_k,
            default_view=VIEW_ARTICLES,
        ),
        ReportDefinition(
            REPORT_ERRORS,
            "Top errors, ignoring vulnerability probes",
            ["status", "url_path", COUNT_COLUMN],
            partial(_top_n, keys=["status", "url_path"]),
            row_filter=lambda engine: ErrorResponseFilter(engine.probe_paths),
        ),
        ReportDefinition(
            REPORT_SCANNING_ASNS,
            "Top networks requesting vulnerability-probe paths",
            ["client_asn", "asn_name", COUNT_COLUMN],
            partial(_top_n, keys=["client_asn", "asn_name"]),
            row_filter=lambda engine: ProbeTrafficFilter(engine.probe_paths),
        ),
    ]
}


def rows_to_frame(rows: Iterable[NormalizedRow]) -> pd.DataFrame:
    """
    Build a frame from normalized rows, preserving their order.

    Columns are kept as Python objects so nullable integers (ASNs) are not
    coerced to floats.
    """
    return pd.DataFrame([vars(row) for row in rows], columns=ROW_COLUMNS, dtype=object)


def frame_to_records(frame: pd.DataFrame) -> list[dict]:
    """Convert a result frame to plain Python rows (NaN becomes None)."""
    plain = frame.astype(object)
    plain = plain.where(plain.notna(), None)
    return plain.to_dict("records")


class ReportEngine:
    """
    Runs named reports against the store.

    Example:
        engine = ReportEngine(backend)
        result = engine.run_report("pages", ReportParams(top_n=10))
        for row in result.rows:
            print(row["url_path"], row["count"])
    """

    def __init__(
        self,
        backend: StorageBackend,
        settings: Optional[Settings] = None,
        now: Optional[datetime] = None,
    ):
        """
        Args:
            backend: Initialized storage backend
            settings: Application settings (defaults to get_settings())
            now: Fixed reference time for the window (default: time of each run)
        """
        self.settings = settings or get_settings()
        self.now = now
        self._join = NormalizationJoin(backend, self.settings.timezone)
        filters = self.settings.filters
        self.probe_paths = ProbePathMatcher(
            filters.probe_path_prefixes, filters.probe_path_suffixes
        )

    @staticmethod
    def available_reports() -> list[str]:
        return list(REPORTS)

    def default_params(self) -> ReportParams:
        return ReportParams.from_settings(self.settings.reports)

    def run_report(self, name: str, params: Optional[ReportParams] = None) -> ReportResult:
        """
        Run one report.

        Raises:
            UnknownReportError: If no report has that name
            ReportParameterError: If params are invalid (nothing is queried)
            ReportError: If the report fails while reading the store
        """
        definition = REPORTS.get(name)
        if definition is None:
            raise UnknownReportError(name, self.available_reports())

        params = params or self.default_params()
        params.validate()

        view = params.view or definition.default_view
        now = self.now or datetime.now(timezone.utc)
        pipeline = FilterPipeline.from_settings(
            self._join, self.settings, now=now, window_days=params.window_days
        )

        try:
            with closing(pipeline.view(view)) as rows:
                if definition.row_filter is not None:
                    frame = rows_to_frame(definition.row_filter(self).apply(rows))
                else:
                    frame = rows_to_frame(rows)
        except StorageError as e:
            logger.error(f"Report '{name}' failed: {e}")
            raise ReportError(f"Report '{name}' failed: {e}") from e

        result_frame = definition.aggregate(frame, params)[definition.columns]
        records = frame_to_records(result_frame)

        logger.info(
            f"Report '{name}' on view '{view}': {len(frame)} input rows, "
            f"{len(records)} result rows"
        )
        return ReportResult(
            name=name,
            columns=list(definition.columns),
            rows=records,
            row_count=len(records),
            description=definition.description,
        )

    def run_all(self, params: Optional[ReportParams] = None) -> list[ReportResult]:
        """Run every report in registration order with the same parameters."""
        params = params or self.default_params()
        params.validate()
        return [self.run_report(name, params) for name in REPORTS]
