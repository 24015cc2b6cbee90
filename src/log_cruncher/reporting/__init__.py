"""
Reporting: named aggregate reports over the filtered views.

Usage:
    from log_cruncher.reporting import ReportEngine, ReportParams, render_table

    engine = ReportEngine(backend)
    print(render_table(engine.run_report("referers", ReportParams(top_n=10))))
"""

from .engine import (
    REPORTS,
    ErrorResponseFilter,
    ProbeTrafficFilter,
    ReportDefinition,
    ReportEngine,
    frame_to_records,
    rows_to_frame,
)
from .params import (
    ReportError,
    ReportParameterError,
    ReportParams,
    ReportResult,
    UnknownReportError,
)
from .ranking import count_top_n, group_counts, top_k_per_partition
from .render import render_json, render_table, truncate

__all__ = [
    # Engine
    "ReportEngine",
    "ReportDefinition",
    "REPORTS",
    "ErrorResponseFilter",
    "ProbeTrafficFilter",
    "rows_to_frame",
    "frame_to_records",
    # Parameters and results
    "ReportParams",
    "ReportResult",
    # Errors
    "ReportError",
    "UnknownReportError",
    "ReportParameterError",
    # Ranking
    "count_top_n",
    "group_counts",
    "top_k_per_partition",
    # Rendering
    "render_table",
    "render_json",
    "truncate",
]
