"""
Lazy iteration over the content collection.
"""

from __future__ import annotations

from typing import Iterator, Optional

from content_backfill.db import (
    ContentFilter,
    ContentRecord,
    DocumentStore,
    matches_filter,
)

DEFAULT_BATCH_SIZE = 100


def iter_content(
    store: DocumentStore,
    content_filter: ContentFilter = ContentFilter.ALL,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> Iterator[ContentRecord]:
    """
    Yield content records matching ``content_filter``, one batch at a time.

    Pages by id (keyset) rather than offset, so records that stop matching
    the filter once migrated do not make the scan skip their neighbours.
    The iterator is single-pass; an interrupted run simply starts over.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    after_id: Optional[str] = None
    while True:
        batch = store.fetch_content_batch(
            content_filter, after_id=after_id, limit=batch_size
        )
        if not batch:
            return
        for record in batch:
            if matches_filter(record, content_filter):
                yield record
        if len(batch) < batch_size:
            return
        after_id = batch[-1].id
