"""
Run orchestration shared by every backfill script.

A run moves through INIT -> CONNECTING -> SCANNING -> REPORTING -> DONE.
Configuration and connection problems end in FATAL with exit status 1;
anything that goes wrong while migrating a single record is logged, counted
as skipped, and the scan moves on.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Iterable, Optional

from content_backfill.audit import has_unique_index
from content_backfill.config import Settings, get_settings
from content_backfill.db import DocumentStore, SqlDocumentStore
from content_backfill.errors import (
    ConfigurationError,
    FatalMigrationError,
    MissingCollectionError,
    RecordError,
)
from content_backfill.migrations import Migration, MigrationReport
from content_backfill.scanner import iter_content

logger = logging.getLogger(__name__)

StoreFactory = Callable[[str], DocumentStore]


class RunState(str, Enum):
    INIT = "INIT"
    CONNECTING = "CONNECTING"
    SCANNING = "SCANNING"
    REPORTING = "REPORTING"
    DONE = "DONE"
    FATAL = "FATAL"


def require_database_url(settings: Settings) -> str:
    if not settings.database_url:
        raise ConfigurationError("DATABASE_URL required")
    return settings.database_url


def open_store(
    settings: Settings,
    *,
    collections: Iterable[str],
    store_factory: Optional[StoreFactory] = None,
) -> DocumentStore:
    """
    Connect to the configured store and check the expected collections exist.

    Raises a FatalMigrationError subclass on missing configuration, an
    unreachable store or a missing collection.
    """
    database_url = require_database_url(settings)
    factory = store_factory or SqlDocumentStore
    store = factory(database_url)
    try:
        store.ping()
        for name in collections:
            if not store.has_collection(name):
                raise MissingCollectionError(name)
    except FatalMigrationError:
        store.close()
        raise
    return store


class MigrationRunner:
    def __init__(
        self,
        migration: Migration,
        *,
        settings: Optional[Settings] = None,
        store_factory: Optional[StoreFactory] = None,
        batch_size: Optional[int] = None,
    ):
        self.migration = migration
        self.settings = settings
        self.store_factory = store_factory
        self.batch_size = batch_size
        self.state = RunState.INIT
        self.report = MigrationReport()

    def _transition(self, state: RunState) -> None:
        logger.debug("%s: %s -> %s", self.migration.name, self.state.value, state.value)
        self.state = state

    def run(self) -> int:
        settings = self.settings or get_settings()
        batch_size = (
            self.batch_size if self.batch_size is not None else settings.backfill_batch_size
        )
        try:
            if batch_size <= 0:
                raise ConfigurationError(f"Batch size must be positive, got {batch_size}")
            require_database_url(settings)
            self._transition(RunState.CONNECTING)
            store = open_store(
                settings,
                collections=self.migration.collections,
                store_factory=self.store_factory,
            )
        except FatalMigrationError as exc:
            self._transition(RunState.FATAL)
            logger.error("%s", exc)
            return 1

        try:
            self._warn_if_unguarded(store)
            self._transition(RunState.SCANNING)
            self._scan(store, batch_size=batch_size)
            self._transition(RunState.REPORTING)
            logger.info(self.migration.summary(self.report))
        finally:
            store.close()
        self._transition(RunState.DONE)
        return 0

    def _warn_if_unguarded(self, store: DocumentStore) -> None:
        if self.migration.unique_index is None:
            return
        collection, fields = self.migration.unique_index
        if not has_unique_index(store, collection, fields):
            logger.warning(
                "No unique index on %s(%s); concurrent writers can still produce duplicates",
                collection,
                ", ".join(fields),
            )

    def _scan(self, store: DocumentStore, *, batch_size: int) -> None:
        for record in iter_content(
            store, self.migration.content_filter, batch_size=batch_size
        ):
            self.report.scanned += 1
            try:
                changed = self.migration.process(store, record)
            except RecordError as exc:
                logger.warning("Skipping %s: %s", record.id, exc)
                self.report.skipped += 1
                self.report.failed += 1
                continue
            except Exception:
                logger.exception("Unexpected error migrating %s", record.id)
                self.report.skipped += 1
                self.report.failed += 1
                continue
            if changed:
                self.report.migrated += 1
            else:
                self.report.skipped += 1


def run_migration(
    migration: Migration,
    *,
    settings: Optional[Settings] = None,
    store_factory: Optional[StoreFactory] = None,
    batch_size: Optional[int] = None,
) -> int:
    """Run ``migration`` once and return the process exit status."""
    runner = MigrationRunner(
        migration,
        settings=settings,
        store_factory=store_factory,
        batch_size=batch_size,
    )
    return runner.run()
