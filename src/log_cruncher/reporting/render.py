"""
Text and JSON rendering of report results.

Display truncation of long values happens here and only here.
"""

import json
from datetime import date, datetime
from typing import Any

from ..config.constants import DEFAULT_DISPLAY_WIDTH
from .params import ReportResult

NULL_DISPLAY = "(none)"
ELLIPSIS = "..."


def truncate(value: str, width: int) -> str:
    """Cut a string to at most `width` characters, marking the cut."""
    if len(value) <= width:
        return value
    if width <= len(ELLIPSIS):
        return value[:width]
    return value[: width - len(ELLIPSIS)] + ELLIPSIS


def format_value(value: Any, width: int = DEFAULT_DISPLAY_WIDTH) -> str:
    if value is None:
        return NULL_DISPLAY
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return truncate(str(value), width)


def render_table(result: ReportResult, width: int = DEFAULT_DISPLAY_WIDTH) -> str:
    """
    Render a result as an aligned text table.

    Each cell is truncated to `width` characters. Numbers are right-aligned,
    everything else left-aligned.
    """
    header = list(result.columns)
    cells = [[format_value(row.get(col), width) for col in header] for row in result.rows]
    numeric = [
        all(isinstance(row.get(col), (int, float)) for row in result.rows)
        and bool(result.rows)
        for col in header
    ]

    widths = [len(h) for h in header]
    for row in cells:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    def line(values: list[str]) -> str:
        parts = [
            v.rjust(widths[i]) if numeric[i] else v.ljust(widths[i])
            for i, v in enumerate(values)
        ]
        return "  ".join(parts).rstrip()

    lines = []
    if result.description:
        lines.append(f"{result.description}:")
    lines.append(line(header))
    lines.append("  ".join("-" * w for w in widths))
    lines.extend(line(row) for row in cells)
    if not cells:
        lines.append("(no rows)")
    return "\n".join(lines)


def render_json(result: ReportResult) -> str:
    """Render a result as JSON; dates become ISO strings."""
    return json.dumps(result.to_dict(), default=_json_default, indent=2)


def _json_default(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
