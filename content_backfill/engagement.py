"""
Fan legacy ``likedBy`` arrays out into the likes collection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from content_backfill.db import ContentRecord, DocumentStore
from content_backfill.errors import DuplicateKeyError, MalformedRecordError

logger = logging.getLogger(__name__)


@dataclass
class EngagementResult:
    migrated: int = 0
    created: int = 0
    duplicates: int = 0
    ignored: int = 0

    def merge(self, other: "EngagementResult") -> None:
        self.migrated += other.migrated
        self.created += other.created
        self.duplicates += other.duplicates
        self.ignored += other.ignored


def normalize_user_id(entry: Any) -> Optional[str]:
    # Legacy arrays hold nulls, empty strings and ObjectIds side by side.
    if not entry:
        return None
    user_id = str(entry)
    if not user_id.strip():
        return None
    return user_id


def migrate_record_likes(
    store: DocumentStore, record: ContentRecord, *, dry_run: bool = False
) -> EngagementResult:
    """
    Ensure one like exists per distinct user in ``record.liked_by``.

    Safe to repeat: inserts are insert-if-absent on (postId, userId), and a
    uniqueness violation from the store counts as an existing like.
    """
    liked_by = record.liked_by
    if not isinstance(liked_by, list):
        raise MalformedRecordError(
            f"likedBy is {type(liked_by).__name__}, expected a list"
        )

    result = EngagementResult()
    for entry in liked_by:
        user_id = normalize_user_id(entry)
        if user_id is None:
            result.ignored += 1
            continue
        if dry_run:
            result.migrated += 1
            continue
        try:
            created = store.insert_engagement_if_absent(record.id, user_id)
        except DuplicateKeyError:
            logger.debug("Skip duplicate like %s %s", record.id, user_id)
            created = False
        result.migrated += 1
        if created:
            result.created += 1
        else:
            result.duplicates += 1
    return result
