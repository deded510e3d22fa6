"""
Checks that the unique constraints the migrations rely on exist.
"""

from __future__ import annotations

from dataclasses import dataclass

from content_backfill.db import (
    CONTENT_COLLECTION,
    ENGAGEMENT_COLLECTION,
    ENGAGEMENT_INDEX,
    PUBLIC_ID_INDEX,
    SLUG_INDEX,
    DocumentStore,
)


@dataclass(frozen=True)
class RequiredIndex:
    collection: str
    fields: tuple[str, ...]
    purpose: str


@dataclass(frozen=True)
class IndexCheck:
    required: RequiredIndex
    present: bool


REQUIRED_UNIQUE_INDEXES = (
    RequiredIndex(
        CONTENT_COLLECTION, SLUG_INDEX, "rejects a slug claimed by a concurrent writer"
    ),
    RequiredIndex(CONTENT_COLLECTION, PUBLIC_ID_INDEX, "keeps public ids distinct"),
    RequiredIndex(
        ENGAGEMENT_COLLECTION, ENGAGEMENT_INDEX, "one like per user per post"
    ),
)


def has_unique_index(
    store: DocumentStore, collection: str, fields: tuple[str, ...]
) -> bool:
    wanted = set(fields)
    return any(set(index) == wanted for index in store.unique_indexes(collection))


def audit_unique_indexes(store: DocumentStore) -> list[IndexCheck]:
    return [
        IndexCheck(
            required=required,
            present=has_unique_index(store, required.collection, required.fields),
        )
        for required in REQUIRED_UNIQUE_INDEXES
    ]
