"""
Scheduler module for Vinyl Alerts.

Uses APScheduler to run a reconciliation pass every scraping.intervalHours
hours (12 by default). A pass that is still running when the next one is
due makes the next one a no-op.

Can also be run manually via command line.
"""

import sys
import logging
from typing import Optional
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import get_scraping_config
from .db import get_db
from .exceptions import VinylAlertsError
from .pipeline import ReconciliationPass, build_reconciliation_pass, seed_preferences

logger = logging.getLogger(__name__)

JOB_ID = "reconcile_listings"


def create_scheduler(reconciliation_pass: ReconciliationPass, interval_hours: int) -> BlockingScheduler:
    """
    Create and configure the APScheduler.

    Jobs:
    1. reconcile_listings: every interval_hours - search, reconcile and alert

    Args:
        reconciliation_pass: Pass to run on each tick
        interval_hours: Hours between passes

    Returns:
        Configured BlockingScheduler
    """
    scheduler = BlockingScheduler()

    scheduler.add_job(
        reconciliation_pass.run,
        trigger=IntervalTrigger(hours=interval_hours),
        id=JOB_ID,
        name="Search marketplace and reconcile listings",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    logger.info(f"Scheduler configured: reconciliation every {interval_hours} hours")
    return scheduler


def start_scheduler(reconciliation_pass: Optional[ReconciliationPass] = None) -> int:
    """
    Start the scheduler (blocking).

    Seeds preference terms, checks the Telegram connection, runs an initial
    pass and then hands over to the scheduler.

    Returns:
        Exit code
    """
    scraping_config = get_scraping_config()
    reconciliation_pass = reconciliation_pass or build_reconciliation_pass()

    seed_preferences(reconciliation_pass.store)

    test_connection = getattr(reconciliation_pass.notifier, "test_connection", None)
    if test_connection is not None and not test_connection():
        logger.error("Failed to connect to Telegram bot. Check your configuration.")
        return 1

    scheduler = create_scheduler(reconciliation_pass, scraping_config.interval_hours)

    logger.info("Starting Vinyl Alerts scheduler...")
    logger.info("Press Ctrl+C to stop")

    logger.info("Running initial pass...")
    reconciliation_pass.run()

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")
    return 0


# =============================================================================
# CLI ENTRY POINT
# =============================================================================

def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point for the scheduler."""
    import argparse

    from .logging_config import configure_logging

    parser = argparse.ArgumentParser(description="Vinyl Alerts Scheduler")
    parser.add_argument(
        "--mode",
        choices=["schedule", "once"],
        default="schedule",
        help="Mode to run: schedule (continuous), once (single pass then exit)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        if args.mode == "schedule":
            return start_scheduler()

        logger.info("Running single pass...")
        seed_preferences(get_db())
        summary = build_reconciliation_pass().run()
        return 0 if summary.success else 1
    except VinylAlertsError as e:
        logger.error(f"Failed to start Vinyl Alerts: {e.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
