#!/usr/bin/env python3
"""
Revenue Dashboard Metrics Runner

Loads the deal list (deals API or JSON file), computes the dashboard views
and writes them as JSON:
1. Monthly won revenue per funnel
2. Current-month performance against target
3. Pipeline composition by stage
4. Forecast by expected close month
"""

import sys
import json
import logging
import argparse
from pathlib import Path
from typing import List, Optional

import pandas as pd

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.settings import settings, DATE_FIELD_ALIASES
from src.api.deals import DealsClient, DealsAPIError, load_deals_file
from src.processing.metrics import DashboardMetricsEngine


logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging for CLI runs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)]
    )


def resolve_now(now_str: Optional[str], timezone: str) -> pd.Timestamp:
    """
    Reference instant for the run.

    Args:
        now_str: ISO timestamp; naive values are read in `timezone`
        timezone: Dashboard calendar timezone

    Returns:
        tz-aware Timestamp
    """
    if not now_str:
        return pd.Timestamp.now(tz=timezone)
    ts = pd.Timestamp(now_str)
    if ts.tz is None:
        return ts.tz_localize(timezone)
    return ts


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compute revenue dashboard metrics")
    parser.add_argument(
        "--source",
        choices=["api", "file"],
        default="api",
        help="Where to read deals from (default: api)"
    )
    parser.add_argument("--file", type=str, help="JSON file with a list of deals (with --source file)")
    parser.add_argument("--now", type=str, default=None, help="Reference instant (ISO format)")
    parser.add_argument(
        "--target",
        type=float,
        default=settings.target_per_funnel,
        help=f"Monthly target per funnel (default: {settings.target_per_funnel:.0f})"
    )
    parser.add_argument(
        "--date-field",
        choices=sorted(DATE_FIELD_ALIASES),
        default="close_date",
        help="Date used to bucket won deals (default: close_date)"
    )
    parser.add_argument("--timezone", type=str, default=settings.timezone, help="Dashboard timezone")
    parser.add_argument("--output", type=str, default=None, help="Write JSON here instead of stdout")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run the metrics computation. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if args.source == "file" and not args.file:
        parser.error("--file is required with --source file")

    try:
        if args.source == "file":
            deals = load_deals_file(args.file)
        else:
            deals = DealsClient().fetch_all()
    except DealsAPIError as e:
        logger.error(f"Could not load deals: {e}")
        return 1

    now = resolve_now(args.now, args.timezone)
    engine = DashboardMetricsEngine(args.target, date_field=args.date_field)
    metrics = engine.compute(deals, now)

    payload = json.dumps(metrics.to_dict(), ensure_ascii=False, indent=2)
    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        logger.info(f"Metrics written to {args.output}")
    else:
        print(payload)

    return 0


if __name__ == "__main__":
    sys.exit(main())
