"""Report parameters, results and report-level errors."""

from dataclasses import dataclass, field
from typing import Any, Optional

import pandas as pd

from ..config.constants import (
    DEFAULT_PER_DAY_K,
    DEFAULT_TOP_N,
    DEFAULT_WINDOW_DAYS,
    VIEW_NAMES,
)
from ..config.settings import ReportSettings


class ReportError(Exception):
    """Base exception for report failures. No partial result is returned."""

    pass


class UnknownReportError(ReportError):
    """Raised when a report name is not registered."""

    def __init__(self, name: str, available: Optional[list[str]] = None):
        self.name = name
        self.available = available or []
        message = f"Unknown report: '{name}'"
        if self.available:
            message += f". Available reports: {', '.join(self.available)}"
        super().__init__(message)


class ReportParameterError(ReportError, ValueError):
    """Raised for invalid report parameters, before any query runs."""

    pass


@dataclass
class ReportParams:
    """
    Parameters shared by all reports.

    Attributes:
        window_days: Length of the trailing time window in days
        top_n: Maximum number of groups in a top-N listing
        per_day_k: Groups kept per date in per-day rankings
        view: Filter stage to report on (None = the report's default)
    """

    window_days: int = DEFAULT_WINDOW_DAYS
    top_n: int = DEFAULT_TOP_N
    per_day_k: int = DEFAULT_PER_DAY_K
    view: Optional[str] = None

    def validate(self) -> None:
        """
        Raises:
            ReportParameterError: Describing the first invalid parameter
        """
        for name in ("window_days", "top_n", "per_day_k"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ReportParameterError(
                    f"{name} must be an integer, got {value!r}"
                )
            if value < 0:
                raise ReportParameterError(f"{name} must be >= 0, got {value}")

        if self.view is not None and self.view not in VIEW_NAMES:
            raise ReportParameterError(
                f"Unknown view: '{self.view}'. Available: {', '.join(VIEW_NAMES)}"
            )

    @classmethod
    def from_settings(cls, settings: ReportSettings) -> "ReportParams":
        """Defaults taken from the configured report settings."""
        return cls(
            window_days=settings.window_days,
            top_n=settings.top_n,
            per_day_k=settings.per_day_k,
        )


@dataclass
class ReportResult:
    """Result of a report run: ordered rows with named columns."""

    name: str
    columns: list[str]
    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    description: str = ""

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.rows, columns=self.columns)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "description": self.description,
            "columns": list(self.columns),
            "rows": [dict(row) for row in self.rows],
            "row_count": self.row_count,
        }
