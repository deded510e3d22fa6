"""
Exceptions raised by the backfill engine.

Fatal errors abort the whole run; record errors are caught by the runner,
logged against the offending record and counted as skipped.
"""

from __future__ import annotations


class BackfillError(Exception):
    """Base class for every error raised by the engine."""


class FatalMigrationError(BackfillError):
    """The run cannot start or continue."""


class ConfigurationError(FatalMigrationError):
    pass


class StoreUnavailableError(FatalMigrationError):
    pass


class MissingCollectionError(FatalMigrationError):
    def __init__(self, collection: str):
        super().__init__(f"Collection '{collection}' does not exist")
        self.collection = collection


class RecordError(BackfillError):
    """A single record could not be migrated; the run carries on."""


class DuplicateKeyError(RecordError):
    """The store rejected a write because a unique key is already taken."""

    def __init__(self, collection: str, key: tuple):
        super().__init__(f"Duplicate key {key!r} in '{collection}'")
        self.collection = collection
        self.key = key


class SlugConflictError(RecordError):
    def __init__(self, content_id: str, attempts: int):
        super().__init__(
            f"Could not claim a unique slug for {content_id} after {attempts} attempts"
        )
        self.content_id = content_id
        self.attempts = attempts


class MalformedRecordError(RecordError):
    pass
