#!/usr/bin/env python3
"""
dedupe_watchlists.py  –  Merge duplicate entries in stored watchlists.

Entries sharing the same (mediaType, externalId) are folded into one and the
cleaned array is written back to MongoDB.

Usage:
    python dedupe_watchlists.py --all              # every stored watchlist
    python dedupe_watchlists.py --user 123456      # one user (repeatable)
    python dedupe_watchlists.py --all --dry-run    # report only, write nothing
    python dedupe_watchlists.py --user 123456 --stats

Run from the project root:
    cd /path/to/mediatrack && python dedupe_watchlists.py --all
"""
import os
import sys
import argparse
import logging
import time

# Ensure the project root is in sys.path
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from dotenv import load_dotenv
load_dotenv()

from mediatrack.core.config import get_config, get_log_level
from mediatrack.core.db_connector import check_db_connection
from mediatrack.models.watchlist import (
    deduplicate_user_watchlist, deduplicate_all_watchlists, get_watchlist_stats,
)

logger = logging.getLogger(__name__)


def _parse_user_id(value):
    """User ids are stored as ints; fall back to the raw string for other schemes."""
    value = value.strip()
    if not value:
        raise argparse.ArgumentTypeError("user id cannot be empty")
    try:
        return int(value)
    except ValueError:
        return value


def build_parser():
    parser = argparse.ArgumentParser(description="Merge duplicate entries in stored watchlists")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--user", type=_parse_user_id, action="append", dest="users",
                        metavar="ID", help="Deduplicate one user's watchlist (repeatable)")
    target.add_argument("--all", action="store_true",
                        help="Deduplicate every stored watchlist")
    parser.add_argument("--dry-run", action="store_true",
                        help="Report what would change without writing")
    parser.add_argument("--stats", action="store_true",
                        help="Print watchlist statistics for --user targets and exit")
    parser.add_argument("--log-level", type=str, default=None,
                        help="Logging level (default: LOG_LEVEL from the environment)")
    return parser


def show_stats(user_id):
    """Print watchlist statistics for one user."""
    stats = get_watchlist_stats(user_id)
    print(f"\n=== Watchlist Statistics: user {user_id} ===")
    print(f"  Total entries:         {stats['total']}")
    for status in ("watching", "completed", "plan_to_watch", "on-hold", "dropped"):
        print(f"  {status + ':':<23}{stats[status]}")
    print(f"  Rated only:            {stats['rated_only']}")
    print(f"  Total progress:        {stats['total_progress']}")
    for media_type, count in sorted(stats["by_media_type"].items(), key=lambda kv: str(kv[0])):
        print(f"  [{media_type}]{'':<16}{count}")
    print()


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.stats and args.all:
        parser.error("--stats requires --user")

    logging.basicConfig(
        level=get_log_level(args.log_level),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    try:
        get_config().validate()
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    health = check_db_connection()
    if health["status"] != "connected":
        logger.error("Cannot reach MongoDB: %s", health.get("message"))
        return 1

    if args.stats:
        for user_id in args.users:
            show_stats(user_id)
        return 0

    start = time.time()

    if args.all:
        totals = deduplicate_all_watchlists(dry_run=args.dry_run)
        if "error" in totals:
            return 1
        logger.info(
            "=== DEDUPLICATION COMPLETE in %.1fs ===\n"
            "  Watchlists: %d\n"
            "  Changed:    %d\n"
            "  Merged:     %d\n"
            "  Dropped:    %d (invalid)\n"
            "  Written:    %d",
            time.time() - start,
            totals["users"],
            totals["changed"],
            totals["merged"],
            totals["skipped"],
            totals["written"],
        )
        return 0

    failed = False
    for user_id in args.users:
        result = deduplicate_user_watchlist(user_id, dry_run=args.dry_run)
        if "error" in result:
            failed = True
            continue
        print(
            f"  user {user_id}: {result['before']} -> {result['after']} "
            f"(merged={result['merged']}, dropped={result['skipped']}, "
            f"written={'yes' if result['written'] else 'no'})"
        )

    logger.info("Total time: %.1fs", time.time() - start)
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
