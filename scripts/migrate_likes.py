"""
Backfill the likes collection from the legacy blogposts.likedBy arrays.

Run once after deploying the likes collection. Re-running is harmless: each
(postId, userId) pair is inserted only if absent.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from content_backfill.config import get_settings
from content_backfill.migrations import LikesMigration
from content_backfill.runner import run_migration


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Backfill likes from legacy likedBy arrays"
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Posts fetched per query (defaults to BACKFILL_BATCH_SIZE)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report how many likes would be migrated without saving",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    return run_migration(
        LikesMigration(dry_run=args.dry_run),
        settings=get_settings(),
        batch_size=args.batch_size,
    )


if __name__ == "__main__":
    raise SystemExit(main())
