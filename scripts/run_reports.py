#!/usr/bin/env python3
"""
CLI script to run access-log reports.

Usage:
    # Run every report over the last 7 days
    python scripts/run_reports.py --all

    # Run specific reports
    python scripts/run_reports.py --report referers --report pages --top-n 10

    # Errors over the whole history, as JSON
    python scripts/run_reports.py --report errors --view without_junk --json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from log_cruncher.config import REPORT_NAMES, VIEW_NAMES, get_settings
from log_cruncher.pipeline import setup_logging
from log_cruncher.reporting import (
    ReportEngine,
    ReportError,
    ReportParams,
    render_json,
    render_table,
)
from log_cruncher.storage import get_backend


def non_negative_int(value: str) -> int:
    """Parse a non-negative integer argument."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Not an integer: {value}")
    if number < 0:
        raise argparse.ArgumentTypeError(f"Must be >= 0: {value}")
    return number


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run access-log reports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run all reports
  python scripts/run_reports.py --all

  # Top 10 referers over the last 30 days
  python scripts/run_reports.py --report referers --window-days 30 --top-n 10

  # Output as JSON
  python scripts/run_reports.py --all --json
        """,
    )

    parser.add_argument(
        "--db-path",
        type=Path,
        help="Path to SQLite database (default: from settings)",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to YAML config file (default: config.yaml)",
    )
    parser.add_argument(
        "--all",
        action="store_true",
        help="Run all reports",
    )
    parser.add_argument(
        "--report",
        action="append",
        choices=REPORT_NAMES,
        help=f"Report to run (can specify multiple). Available: {', '.join(REPORT_NAMES)}",
    )
    parser.add_argument(
        "--window-days",
        type=non_negative_int,
        help="Trailing window in days (default: from settings, 7)",
    )
    parser.add_argument(
        "--top-n",
        type=non_negative_int,
        help="Rows per top-N report (default: from settings, 20)",
    )
    parser.add_argument(
        "--per-day-k",
        type=non_negative_int,
        help="Articles kept per day (default: from settings, 3)",
    )
    parser.add_argument(
        "--view",
        choices=VIEW_NAMES,
        help="Override the filter stage every report runs on",
    )
    parser.add_argument(
        "--width",
        type=non_negative_int,
        help="Display width for long values (default: from settings, 70)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    if not args.all and not args.report:
        parser.error("Must specify --all or at least one --report")

    setup_logging(level=logging.DEBUG if args.verbose else logging.WARNING)
    logger = logging.getLogger(__name__)

    settings = get_settings(args.config)
    db_path = args.db_path or Path(settings.sqlite_db_path)

    params = ReportParams.from_settings(settings.reports)
    if args.window_days is not None:
        params.window_days = args.window_days
    if args.top_n is not None:
        params.top_n = args.top_n
    if args.per_day_k is not None:
        params.per_day_k = args.per_day_k
    params.view = args.view
    width = args.width or settings.reports.display_width

    reports = REPORT_NAMES if args.all else args.report

    backend = get_backend("sqlite", db_path=db_path)
    backend.initialize()

    try:
        engine = ReportEngine(backend, settings=settings)
        results = [engine.run_report(name, params) for name in reports]
    except ReportError as e:
        logger.error(str(e))
        return 1
    finally:
        backend.close()

    if args.json:
        print(json.dumps([json.loads(render_json(r)) for r in results], indent=2))
    else:
        for result in results:
            print()
            print(render_table(result, width=width))

    return 0


if __name__ == "__main__":
    sys.exit(main())
