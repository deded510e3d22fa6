"""
Per-record transforms for each backfill.

A migration names the records it scans, the collections and unique index it
depends on, and how to process one record. The runner owns iteration, error
handling and reporting.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from content_backfill.db import (
    BLANK_CHARS,
    CONTENT_COLLECTION,
    ENGAGEMENT_COLLECTION,
    ENGAGEMENT_INDEX,
    PUBLIC_ID_INDEX,
    SLUG_INDEX,
    ContentFilter,
    ContentRecord,
    DocumentStore,
    has_images,
    is_blank,
)
from content_backfill.engagement import EngagementResult, migrate_record_likes
from content_backfill.slugs import assign_unique_slug

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    scanned: int = 0
    migrated: int = 0
    skipped: int = 0
    failed: int = 0


class Migration:
    name = "migration"
    content_filter = ContentFilter.ALL
    collections: tuple[str, ...] = (CONTENT_COLLECTION,)
    unique_index: Optional[tuple[str, tuple[str, ...]]] = None

    def __init__(self, *, dry_run: bool = False):
        self.dry_run = dry_run

    def process(self, store: DocumentStore, record: ContentRecord) -> bool:
        """Migrate one record. Returns False if there was nothing to do."""
        raise NotImplementedError

    def summary(self, report: MigrationReport) -> str:
        return (
            f"{self.name} done. Updated: {report.migrated}, "
            f"Skipped: {report.skipped} (failed: {report.failed})"
        )

    def _prefix(self) -> str:
        return "[dry-run] " if self.dry_run else ""


class SlugMigration(Migration):
    name = "Slug migration"
    content_filter = ContentFilter.MISSING_SLUG
    unique_index = (CONTENT_COLLECTION, SLUG_INDEX)

    def __init__(self, *, dry_run: bool = False, max_conflict_retries: int = 5):
        super().__init__(dry_run=dry_run)
        self.max_conflict_retries = max_conflict_retries

    def process(self, store: DocumentStore, record: ContentRecord) -> bool:
        slug = assign_unique_slug(
            store,
            record,
            max_conflict_retries=self.max_conflict_retries,
            dry_run=self.dry_run,
        )
        if slug is None:
            return False
        logger.info("%s%s -> slug: %s", self._prefix(), record.id, slug)
        return True


class LikesMigration(Migration):
    name = "Likes migration"
    content_filter = ContentFilter.HAS_LEGACY_LIKES
    collections = (CONTENT_COLLECTION, ENGAGEMENT_COLLECTION)
    unique_index = (ENGAGEMENT_COLLECTION, ENGAGEMENT_INDEX)

    def __init__(self, *, dry_run: bool = False):
        super().__init__(dry_run=dry_run)
        self.totals = EngagementResult()

    def process(self, store: DocumentStore, record: ContentRecord) -> bool:
        result = migrate_record_likes(store, record, dry_run=self.dry_run)
        self.totals.merge(result)
        if not result.migrated:
            return False
        logger.info(
            "%s%s -> likes: %d (%d new)",
            self._prefix(),
            record.id,
            result.migrated,
            result.created,
        )
        return True

    def summary(self, report: MigrationReport) -> str:
        return (
            f"Migrated {self.totals.migrated} likes "
            f"({self.totals.created} new, {self.totals.duplicates} already present, "
            f"{self.totals.ignored} empty entries ignored) from {report.migrated} posts. "
            f"Skipped posts: {report.skipped} (failed: {report.failed})"
        )


class PublicIdMigration(Migration):
    """Assign an opaque public id to posts created before ids were exposed."""

    name = "Public id backfill"
    content_filter = ContentFilter.MISSING_PUBLIC_ID
    unique_index = (CONTENT_COLLECTION, PUBLIC_ID_INDEX)

    def __init__(
        self,
        *,
        dry_run: bool = False,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        super().__init__(dry_run=dry_run)
        self.id_factory = id_factory or (lambda: uuid.uuid4().hex)

    def process(self, store: DocumentStore, record: ContentRecord) -> bool:
        if not is_blank(record.public_id):
            return False
        public_id = self.id_factory()
        if not self.dry_run and not store.set_content_field_if_unset(
            record.id, "public_id", public_id
        ):
            return False
        logger.info("%s%s -> publicId: %s", self._prefix(), record.id, public_id)
        return True


class CoverImageMigration(Migration):
    """Copy the legacy coverImageUrl into images[0] for posts without images."""

    name = "Cover image migration"
    content_filter = ContentFilter.HAS_COVER_IMAGE

    def __init__(
        self,
        *,
        dry_run: bool = False,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        super().__init__(dry_run=dry_run)
        self.id_factory = id_factory or (lambda: uuid.uuid4().hex)

    def process(self, store: DocumentStore, record: ContentRecord) -> bool:
        if is_blank(record.cover_image_url) or has_images(record.images):
            return False
        url = record.cover_image_url.strip(BLANK_CHARS)
        image = {"_id": self.id_factory(), "url": url, "order": 0}
        if not self.dry_run and not store.set_images_if_empty(record.id, [image]):
            return False
        logger.info("%s%s -> images[0]: %s", self._prefix(), record.id, url)
        return True
