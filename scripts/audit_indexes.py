"""
Report whether the unique indexes the backfills depend on are present.

Missing indexes are reported as warnings; the exit status is non-zero only
when the store cannot be reached.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from content_backfill.audit import audit_unique_indexes
from content_backfill.config import get_settings
from content_backfill.db import CONTENT_COLLECTION, ENGAGEMENT_COLLECTION
from content_backfill.errors import FatalMigrationError
from content_backfill.runner import open_store

logger = logging.getLogger(__name__)


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    try:
        store = open_store(
            get_settings(),
            collections=(CONTENT_COLLECTION, ENGAGEMENT_COLLECTION),
        )
    except FatalMigrationError as exc:
        logger.error("%s", exc)
        return 1

    try:
        checks = audit_unique_indexes(store)
    finally:
        store.close()

    for check in checks:
        required = check.required
        fields = ", ".join(required.fields)
        if check.present:
            logger.info("%s(%s): present", required.collection, fields)
        else:
            logger.warning(
                "%s(%s): missing unique index (%s)",
                required.collection,
                fields,
                required.purpose,
            )
    if all(check.present for check in checks):
        logger.info("Required indexes present")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
