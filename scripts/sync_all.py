#!/usr/bin/env python3
"""WordPress feed sync: one scheduled pass or a forced sync of specific feeds.

Usage:
    python scripts/sync_all.py                                  # Every due feed, all connections
    python scripts/sync_all.py --connection agent-1             # Every mapped feed of one connection
    python scripts/sync_all.py --connection agent-1 --role property --full
"""

import argparse
import logging
import os
import sys
import time

# Ensure project root is importable
_PROJECT_ROOT = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _PROJECT_ROOT)

from dotenv import load_dotenv

# DB config and PILOT_WP_* settings
load_dotenv(os.path.join(_PROJECT_ROOT, ".env"), override=False)

from pilot.wordpress.contracts import ROLES, parse_role
from pilot.wordpress.errors import WordPressSyncError
from pilot.wordpress.runtime import get_connection_store, get_sync_runner

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("sync_all")


def _sync_connection(connection_id: str, roles: list[str], *, full: bool) -> int:
    """Sync the mapped feeds of one connection regardless of schedule. Returns failures."""
    config = get_connection_store().load_connection_config(connection_id)
    if config is None:
        logger.error("No WordPress connection stored for %s", connection_id)
        return 1

    runner = get_sync_runner()
    failures = 0
    for role in roles:
        if not config.endpoint_for(role):
            logger.info("%s: no %s endpoint mapped, skipping", connection_id, role)
            continue
        try:
            outcome = runner.run(connection_id, role, full=full)
        except WordPressSyncError as exc:
            logger.error("%s %s sync failed: %s", connection_id, role, exc)
            failures += 1
            continue
        logger.info("%s %s: %d items", connection_id, role, outcome.item_count)
    return failures


def main() -> int:
    parser = argparse.ArgumentParser(description="Sync WordPress community and property feeds")
    parser.add_argument("--connection", help="Sync this connection now instead of running a scheduled pass")
    parser.add_argument("--role", choices=["community", "property", "home"], help="Only this feed (with --connection)")
    parser.add_argument("--full", action="store_true", help="Full resync: rebuild records from scratch")
    args = parser.parse_args()

    if (args.role or args.full) and not args.connection:
        parser.error("--role and --full need --connection")

    t0 = time.monotonic()
    if args.connection:
        roles = [parse_role(args.role)] if args.role else list(ROLES)
        logger.info("Starting sync: connection=%s roles=%s full=%s", args.connection, roles, args.full)
        failures = _sync_connection(args.connection, roles, full=args.full)
    else:
        summary = get_sync_runner().run_due()
        for error in summary.errors:
            logger.error(error)
        failures = len(summary.errors)

    elapsed = time.monotonic() - t0
    logger.info("Sync complete in %.1fs", elapsed)
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
