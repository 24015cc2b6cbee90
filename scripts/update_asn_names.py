#!/usr/bin/env python3
"""
CLI script to look up names for the ASNs seen in the logs.

Names come from PeeringDB; networks PeeringDB does not know are checked
against the Spamhaus ASN-DROP list.

Usage:
    python scripts/update_asn_names.py
    python scripts/update_asn_names.py --db-path data/access-logs.db --json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from log_cruncher.config import get_settings
from log_cruncher.enrichment import AsnNameResolver, EnrichmentError
from log_cruncher.pipeline import setup_logging
from log_cruncher.storage import get_backend

logger = logging.getLogger(__name__)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Fill in names for autonomous systems seen in the logs",
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
        "--json",
        action="store_true",
        help="Print the result as JSON",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    settings = get_settings(args.config)
    db_path = args.db_path or Path(settings.sqlite_db_path)

    with get_backend("sqlite", db_path=db_path) as backend:
        backend.initialize()
        with AsnNameResolver(backend, settings=settings.enrichment) as resolver:
            try:
                result = resolver.catchup()
            except EnrichmentError as e:
                logger.error(str(e))
                return 1

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(f"Named from PeeringDB:   {result.named}")
        print(f"Found on DROP list:     {result.droplisted}")
        print(f"Still unknown:          {len(result.unknown)}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
