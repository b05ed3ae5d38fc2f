"""Check the makerspace calendar once and report newly opened overnight slots.

Standalone CLI script meant to be run on a schedule (cron, GitHub Actions).
Scans every page of the reservation calendar, compares the open last slots
against the previous run's state file, emails what's new, and mirrors the
current availability into an Outlook calendar when Graph credentials are set.

Run with: python scripts/check_availability.py
Debug:    python scripts/check_availability.py --headed --log-level DEBUG
Dry run:  python scripts/check_availability.py --dry-run   # no save/email/calendar

Exit codes:
  0 = check completed (even if email or calendar sync failed)
  1 = the calendar could not be loaded or configuration is invalid
"""

import argparse
import asyncio
import os
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.slotwatch.config import get_config  # noqa: E402
from src.slotwatch.differ import format_delta_summary  # noqa: E402
from src.slotwatch.errors import SlotWatchError  # noqa: E402
from src.slotwatch.logging import (  # noqa: E402
    bind_run_context,
    get_logger,
    setup_logging,
)
from src.slotwatch.monitor import (  # noqa: E402
    build_notifier,
    build_reconciler,
    run_check,
)


def _parse_args() -> argparse.Namespace:
    """Parse CLI arguments using argparse."""
    parser = argparse.ArgumentParser(
        description="Check makerspace equipment calendar for open overnight slots.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Launch browser in headed mode (visible window).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Scan and diff only; don't save state, send email or touch the calendar.",
    )
    parser.add_argument(
        "--no-calendar",
        action="store_true",
        help="Skip the Outlook calendar mirror even if credentials are set.",
    )
    parser.add_argument(
        "--state-file",
        type=str,
        default=None,
        help="Override the state file path (default from SLOTWATCH_STATE_FILE).",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Override the log level (DEBUG, INFO, WARNING, ...).",
    )
    return parser.parse_args()


async def main(args: argparse.Namespace) -> int:
    try:
        config = get_config()
    except ValidationError as e:
        print(f"ERROR: invalid configuration\n{e}", file=sys.stderr)
        return 1

    updates: dict = {}
    if args.headed:
        updates["headless"] = False
    if args.state_file:
        updates["state_file"] = args.state_file
    if updates:
        config = config.model_copy(update=updates)

    setup_logging(json_output=config.log_json, log_level=args.log_level or config.log_level)
    log = get_logger("check_availability")
    bind_run_context(config.calendar_url)
    log.info("run_started", dry_run=args.dry_run)

    notifier = None if args.dry_run else build_notifier(config)
    reconciler = None if (args.dry_run or args.no_calendar) else build_reconciler(config)

    try:
        result = await run_check(
            config,
            notifier=notifier,
            reconciler=reconciler,
            dry_run=args.dry_run,
        )
    except SlotWatchError as e:
        log.error("run_aborted", error=str(e), type=type(e).__name__)
        return 1

    print(format_delta_summary(result.delta))
    log.info(
        "run_finished",
        available=len(result.snapshot),
        added=len(result.delta.added),
        first_run=result.first_run,
        state_saved=result.state_saved,
        notified=result.notified,
    )
    return 0


if __name__ == "__main__":
    args = _parse_args()
    try:
        sys.exit(asyncio.run(main(args)))
    except KeyboardInterrupt:
        sys.exit(130)
