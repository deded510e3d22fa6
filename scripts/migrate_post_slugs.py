"""
Ensure every blog post has a unique slug.

Run once after adding slug support. Safe to run multiple times: posts that
already have a slug are never looked up or written.
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
from content_backfill.migrations import SlugMigration
from content_backfill.runner import run_migration


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Backfill unique slugs for blog posts"
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
        help="Log the slugs that would be assigned without saving",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    settings = get_settings()
    migration = SlugMigration(
        dry_run=args.dry_run,
        max_conflict_retries=settings.slug_max_conflict_retries,
    )
    return run_migration(migration, settings=settings, batch_size=args.batch_size)


if __name__ == "__main__":
    raise SystemExit(main())
