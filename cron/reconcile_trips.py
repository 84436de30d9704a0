#!/usr/bin/env python3
"""
Nightly trip reconciliation.

Run nightly via cron:
    30 2 * * * cd /path/to/intercity-dispatch && python -m cron.reconcile_trips

This script:
1. Loads every scheduled or in-progress trip (optionally one travel date)
2. Recomputes each trip's capacity ledger from the orders it holds
3. Checks pickup/delivery leg fan-out and sequence contiguity
4. Logs every drift at ERROR and exits non-zero if any was found

Nothing is repaired: drift is a bug to investigate, not to paper over.
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, date
from typing import Optional

from app.core.logging import setup_logging
from app.database import async_session_maker
from app.services.reconciliation import reconcile_all, ReconciliationReport


logger = logging.getLogger("reconcile_trips")


async def run_reconciliation(
    travel_date: Optional[date] = None,
    include_finished: bool = False,
) -> ReconciliationReport:
    """
    Main entry point for the reconciliation cron job.

    Read-only: the session is rolled back when the block exits.
    """
    async with async_session_maker() as db:
        return await reconcile_all(db, travel_date=travel_date, include_finished=include_finished)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile trip capacity ledgers and leg fan-out")
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Only reconcile trips travelling on this date (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--include-finished",
        action="store_true",
        help="Also check completed and cancelled trips",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """CLI entry point."""
    args = parse_args(argv)
    setup_logging()

    logger.info("=" * 60)
    logger.info("TRIP RECONCILIATION - " + datetime.utcnow().isoformat())
    logger.info("=" * 60)

    try:
        report = asyncio.run(run_reconciliation(args.date, args.include_finished))
    except Exception as e:
        logger.error(f"Reconciliation failed: {e}")
        return 2

    print("\n" + "=" * 40)
    print("RECONCILIATION SUMMARY")
    print("=" * 40)
    print(f"Trips Checked: {report.checked_trips}")
    print(f"Issues Found:  {len(report.issues)}")
    for issue in report.issues[:20]:
        print(f"  - [{issue.kind}] trip {issue.trip_id}: {issue.message}")
    print("=" * 40)

    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
