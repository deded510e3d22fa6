"""
Slug generation and uniqueness resolution for blog posts.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from content_backfill.db import ContentRecord, DocumentStore
from content_backfill.errors import DuplicateKeyError, SlugConflictError

logger = logging.getLogger(__name__)

FALLBACK_SLUG = "post"
SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

_INVALID_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE_RUNS = re.compile(r"\s+")
_HYPHEN_RUNS = re.compile(r"-+")


def slug_from_title(title: Any) -> str:
    """
    Derive a URL-safe slug from free text.

    Never fails: anything that does not produce at least one alphanumeric
    character (empty strings, None, non-strings) becomes ``FALLBACK_SLUG``.
    """
    if not isinstance(title, str):
        return FALLBACK_SLUG
    slug = title.lower().strip()
    slug = _INVALID_CHARS.sub("", slug)
    slug = _WHITESPACE_RUNS.sub("-", slug)
    slug = _HYPHEN_RUNS.sub("-", slug)
    return slug.strip("-") or FALLBACK_SLUG


def resolve_unique_slug(
    store: DocumentStore, base_slug: str, *, exclude_id: Optional[str] = None
) -> str:
    """Return ``base_slug`` or the first free ``base_slug-N`` (N >= 1)."""
    slug = base_slug
    counter = 1
    while store.content_field_in_use("slug", slug, exclude_id=exclude_id):
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug


def assign_unique_slug(
    store: DocumentStore,
    record: ContentRecord,
    *,
    max_conflict_retries: int = 5,
    dry_run: bool = False,
) -> Optional[str]:
    """
    Give ``record`` a unique slug derived from its title.

    Returns the slug written, or None when the record already has one (either
    on arrival or because another writer set it first). The write only lands
    if the record is still unslugged; if the store rejects the slug because
    another post claimed it after the lookup, the lookup is repeated.
    """
    if record.has_slug:
        return None

    base_slug = slug_from_title(record.title)
    for attempt in range(1, max_conflict_retries + 1):
        slug = resolve_unique_slug(store, base_slug, exclude_id=record.id)
        if dry_run:
            return slug
        try:
            if store.set_content_field_if_unset(record.id, "slug", slug):
                return slug
        except DuplicateKeyError:
            logger.warning(
                "Slug %s for %s was claimed concurrently (attempt %d/%d)",
                slug,
                record.id,
                attempt,
                max_conflict_retries,
            )
            continue
        logger.info("%s received a slug from another writer; leaving it", record.id)
        return None

    raise SlugConflictError(record.id, max_conflict_retries)
