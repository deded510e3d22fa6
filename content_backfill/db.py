"""
Document store abstraction over SQLAlchemy and an in-memory test implementation.

The content and like collections belong to the blog application; the backfill
only reads posts, writes the ``slug``, ``publicId`` and ``images`` fields and
appends likes.
"""

from __future__ import annotations

import dataclasses
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Protocol

from sqlalchemy import (
    JSON,
    Column,
    Float,
    String,
    UniqueConstraint,
    cast,
    create_engine,
    func,
    inspect,
    insert,
    not_,
    or_,
    select,
    text,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import ArgumentError, DBAPIError, IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from content_backfill.errors import (
    ConfigurationError,
    DuplicateKeyError,
    StoreUnavailableError,
)

CONTENT_COLLECTION = "blogposts"
ENGAGEMENT_COLLECTION = "likes"

# Unique keys the engine relies on, in store field names.
SLUG_INDEX = ("slug",)
PUBLIC_ID_INDEX = ("publicId",)
ENGAGEMENT_INDEX = ("postId", "userId")

# Content fields the backfill is allowed to write.
WRITABLE_CONTENT_FIELDS = ("slug", "public_id")

# Characters treated as blank both in Python and in SQL (see _blank).
BLANK_CHARS = " \t\n\r\f\v"


class ContentFilter(str, Enum):
    ALL = "all"
    MISSING_SLUG = "missing_slug"
    HAS_LEGACY_LIKES = "has_legacy_likes"
    MISSING_PUBLIC_ID = "missing_public_id"
    HAS_COVER_IMAGE = "has_cover_image"


def is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip(BLANK_CHARS)


def has_images(value: Any) -> bool:
    return isinstance(value, list) and len(value) > 0


@dataclass
class ContentRecord:
    id: str
    title: Any = None
    slug: Optional[str] = None
    liked_by: Any = None
    public_id: Optional[str] = None
    cover_image_url: Optional[str] = None
    images: Any = None

    @property
    def has_slug(self) -> bool:
        return not is_blank(self.slug)


@dataclass
class EngagementRecord:
    content_id: str
    user_id: str
    created_at: float = field(default_factory=lambda: time.time())


def matches_filter(record: ContentRecord, content_filter: ContentFilter) -> bool:
    """Exact, in-process version of a content filter."""
    if content_filter is ContentFilter.MISSING_SLUG:
        return not record.has_slug
    if content_filter is ContentFilter.MISSING_PUBLIC_ID:
        return is_blank(record.public_id)
    if content_filter is ContentFilter.HAS_LEGACY_LIKES:
        # Non-list values still match so the normalizer can report them.
        return record.liked_by is not None and record.liked_by != []
    if content_filter is ContentFilter.HAS_COVER_IMAGE:
        return not is_blank(record.cover_image_url)
    return True


class DocumentStore(Protocol):
    """Operations the migrations need from the document store."""

    def ping(self) -> None:
        ...

    def has_collection(self, name: str) -> bool:
        ...

    def unique_indexes(self, collection: str) -> list[tuple[str, ...]]:
        ...

    def fetch_content_batch(
        self,
        content_filter: ContentFilter,
        *,
        after_id: Optional[str],
        limit: int,
    ) -> list[ContentRecord]:
        ...

    def content_field_in_use(
        self, field_name: str, value: str, *, exclude_id: Optional[str] = None
    ) -> bool:
        ...

    def set_content_field_if_unset(
        self, content_id: str, field_name: str, value: str
    ) -> bool:
        ...

    def set_images_if_empty(self, content_id: str, images: list[dict]) -> bool:
        ...

    def insert_engagement_if_absent(
        self, content_id: str, user_id: str, created_at: Optional[float] = None
    ) -> bool:
        ...

    def close(self) -> None:
        ...


def _check_writable(field_name: str) -> None:
    if field_name not in WRITABLE_CONTENT_FIELDS:
        raise ValueError(f"Unsupported content field: {field_name}")


class InMemoryDocumentStore:
    """Simple in-memory document store for development and tests."""

    def __init__(
        self,
        *,
        enforce_unique_slugs: bool = True,
        collections: Iterable[str] = (CONTENT_COLLECTION, ENGAGEMENT_COLLECTION),
    ):
        self.content: Dict[str, ContentRecord] = {}
        self.engagements: Dict[tuple[str, str], EngagementRecord] = {}
        self.collections = set(collections)
        self.enforce_unique_slugs = enforce_unique_slugs
        self.writes = 0
        self.closed = False

    def add_content(self, record: ContentRecord) -> None:
        self.content[record.id] = dataclasses.replace(record)

    def get_content(self, content_id: str) -> Optional[ContentRecord]:
        return self.content.get(content_id)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.content.clear()
        self.engagements.clear()
        self.writes = 0

    def ping(self) -> None:
        return None

    def has_collection(self, name: str) -> bool:
        return name in self.collections

    def unique_indexes(self, collection: str) -> list[tuple[str, ...]]:
        if collection == CONTENT_COLLECTION:
            indexes = [PUBLIC_ID_INDEX]
            if self.enforce_unique_slugs:
                indexes.insert(0, SLUG_INDEX)
            return indexes
        if collection == ENGAGEMENT_COLLECTION:
            return [ENGAGEMENT_INDEX]
        return []

    def fetch_content_batch(
        self,
        content_filter: ContentFilter,
        *,
        after_id: Optional[str],
        limit: int,
    ) -> list[ContentRecord]:
        batch: list[ContentRecord] = []
        for content_id in sorted(self.content):
            if after_id is not None and content_id <= after_id:
                continue
            record = self.content[content_id]
            if not matches_filter(record, content_filter):
                continue
            batch.append(dataclasses.replace(record))
            if len(batch) >= limit:
                break
        return batch

    def content_field_in_use(
        self, field_name: str, value: str, *, exclude_id: Optional[str] = None
    ) -> bool:
        _check_writable(field_name)
        return any(
            getattr(record, field_name) == value and content_id != exclude_id
            for content_id, record in self.content.items()
        )

    def set_content_field_if_unset(
        self, content_id: str, field_name: str, value: str
    ) -> bool:
        _check_writable(field_name)
        record = self.content.get(content_id)
        if record is None or not is_blank(getattr(record, field_name)):
            return False
        unique = field_name != "slug" or self.enforce_unique_slugs
        if unique and self.content_field_in_use(field_name, value, exclude_id=content_id):
            raise DuplicateKeyError(CONTENT_COLLECTION, (field_name, value))
        setattr(record, field_name, value)
        self.writes += 1
        return True

    def set_images_if_empty(self, content_id: str, images: list[dict]) -> bool:
        record = self.content.get(content_id)
        if record is None or has_images(record.images):
            return False
        record.images = [dict(image) for image in images]
        self.writes += 1
        return True

    def insert_engagement_if_absent(
        self, content_id: str, user_id: str, created_at: Optional[float] = None
    ) -> bool:
        key = (content_id, user_id)
        if key in self.engagements:
            return False
        self.engagements[key] = EngagementRecord(
            content_id=content_id,
            user_id=user_id,
            created_at=created_at if created_at is not None else time.time(),
        )
        self.writes += 1
        return True

    def close(self) -> None:
        self.closed = True


class SqlDocumentStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str, *, create_schema: bool = False):
        if not database_url:
            raise ConfigurationError("DATABASE_URL is required for SqlDocumentStore")
        try:
            self.engine = create_engine(
                database_url,
                future=True,
                pool_pre_ping=True,
                pool_recycle=1800,
            )
        except ArgumentError as exc:
            raise ConfigurationError(f"Invalid DATABASE_URL: {exc}") from exc
        except ImportError as exc:
            # create_engine imports the DBAPI driver named by the URL.
            raise StoreUnavailableError(f"Database driver not installed: {exc}") from exc
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        if create_schema:
            Base.metadata.create_all(self.engine)

    def _to_content_record(self, row: "ContentRow") -> ContentRecord:
        return ContentRecord(
            id=row.id,
            title=row.title,
            slug=row.slug,
            liked_by=row.liked_by,
            public_id=row.public_id,
            cover_image_url=row.cover_image_url,
            images=row.images,
        )

    def add_content(self, record: ContentRecord) -> None:
        with self.Session() as session:
            session.add(
                ContentRow(
                    id=record.id,
                    title=record.title,
                    slug=record.slug,
                    liked_by=record.liked_by,
                    public_id=record.public_id,
                    cover_image_url=record.cover_image_url,
                    images=record.images,
                )
            )
            session.commit()

    def get_content(self, content_id: str) -> Optional[ContentRecord]:
        with self.Session() as session:
            row = session.get(ContentRow, content_id)
            return self._to_content_record(row) if row else None

    def list_engagements(self) -> list[EngagementRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(EngagementRow).order_by(
                    EngagementRow.content_id, EngagementRow.user_id
                )
            ).scalars()
            return [
                EngagementRecord(
                    content_id=row.content_id,
                    user_id=row.user_id,
                    created_at=row.created_at,
                )
                for row in rows
            ]

    def ping(self) -> None:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except DBAPIError as exc:
            raise StoreUnavailableError(f"Cannot reach database: {exc}") from exc

    def has_collection(self, name: str) -> bool:
        return inspect(self.engine).has_table(name)

    def unique_indexes(self, collection: str) -> list[tuple[str, ...]]:
        inspector = inspect(self.engine)
        if not inspector.has_table(collection):
            return []
        found: list[tuple[str, ...]] = []
        for constraint in inspector.get_unique_constraints(collection):
            found.append(tuple(constraint["column_names"]))
        for index in inspector.get_indexes(collection):
            if index.get("unique"):
                found.append(tuple(index["column_names"]))
        primary_key = inspector.get_pk_constraint(collection)
        if primary_key.get("constrained_columns"):
            found.append(tuple(primary_key["constrained_columns"]))
        return list(dict.fromkeys(found))

    def fetch_content_batch(
        self,
        content_filter: ContentFilter,
        *,
        after_id: Optional[str],
        limit: int,
    ) -> list[ContentRecord]:
        stmt = select(ContentRow).order_by(ContentRow.id.asc()).limit(limit)
        if after_id is not None:
            stmt = stmt.where(ContentRow.id > after_id)
        if content_filter is ContentFilter.MISSING_SLUG:
            stmt = stmt.where(_blank(ContentRow.slug))
        elif content_filter is ContentFilter.MISSING_PUBLIC_ID:
            stmt = stmt.where(_blank(ContentRow.public_id))
        elif content_filter is ContentFilter.HAS_LEGACY_LIKES:
            stmt = stmt.where(ContentRow.liked_by.isnot(None))
        elif content_filter is ContentFilter.HAS_COVER_IMAGE:
            stmt = stmt.where(not_(_blank(ContentRow.cover_image_url)))
        with self.Session() as session:
            rows = session.execute(stmt).scalars().all()
            return [self._to_content_record(row) for row in rows]

    def content_field_in_use(
        self, field_name: str, value: str, *, exclude_id: Optional[str] = None
    ) -> bool:
        _check_writable(field_name)
        column = getattr(ContentRow, field_name)
        stmt = select(ContentRow.id).where(column == value).limit(1)
        if exclude_id is not None:
            stmt = stmt.where(ContentRow.id != exclude_id)
        with self.Session() as session:
            return session.execute(stmt).first() is not None

    def set_content_field_if_unset(
        self, content_id: str, field_name: str, value: str
    ) -> bool:
        _check_writable(field_name)
        columns = ContentRow.__mapper__.columns
        column = columns[field_name]
        stmt = (
            update(ContentRow.__table__)
            .where(columns["id"] == content_id, _blank(column))
            .values({column: value})
        )
        with self.Session() as session:
            try:
                result = session.execute(stmt)
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateKeyError(CONTENT_COLLECTION, (field_name, value)) from exc
            return result.rowcount == 1

    def set_images_if_empty(self, content_id: str, images: list[dict]) -> bool:
        columns = ContentRow.__mapper__.columns
        column = columns["images"]
        stmt = (
            update(ContentRow.__table__)
            .where(
                columns["id"] == content_id,
                or_(column.is_(None), cast(column, String) == "[]"),
            )
            .values({column: images})
        )
        with self.Session() as session:
            result = session.execute(stmt)
            session.commit()
            return result.rowcount == 1

    def insert_engagement_if_absent(
        self, content_id: str, user_id: str, created_at: Optional[float] = None
    ) -> bool:
        table = EngagementRow.__table__
        columns = EngagementRow.__mapper__.columns
        values = {
            columns["id"]: uuid.uuid4().hex,
            columns["content_id"]: content_id,
            columns["user_id"]: user_id,
            columns["created_at"]: created_at if created_at is not None else time.time(),
        }
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            stmt = postgresql.insert(table).values(values).on_conflict_do_nothing()
        elif dialect == "sqlite":
            stmt = sqlite.insert(table).values(values).on_conflict_do_nothing()
        else:
            # Plain insert; the unique constraint reports duplicates.
            stmt = insert(table).values(values)
        with self.Session() as session:
            try:
                result = session.execute(stmt)
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateKeyError(ENGAGEMENT_COLLECTION, (content_id, user_id)) from exc
            return result.rowcount == 1

    def close(self) -> None:
        self.engine.dispose()


def _blank(column):
    # SQL trim() only strips spaces, so fold the other BLANK_CHARS into spaces first.
    folded = column
    for char in BLANK_CHARS:
        if char != " ":
            folded = func.replace(folded, char, " ")
    return or_(column.is_(None), func.trim(folded) == "")


Base = declarative_base()


class ContentRow(Base):
    __tablename__ = CONTENT_COLLECTION
    __table_args__ = (
        UniqueConstraint("slug", name="uq_blogposts_slug"),
        UniqueConstraint("publicId", name="uq_blogposts_public_id"),
    )

    id = Column(String, primary_key=True)
    title = Column(String, nullable=True)
    slug = Column(String, nullable=True)
    liked_by = Column("likedBy", JSON(none_as_null=True), nullable=True)
    public_id = Column("publicId", String, nullable=True)
    cover_image_url = Column("coverImageUrl", String, nullable=True)
    images = Column("images", JSON(none_as_null=True), nullable=True)


class EngagementRow(Base):
    __tablename__ = ENGAGEMENT_COLLECTION
    __table_args__ = (
        UniqueConstraint("postId", "userId", name="uq_likes_post_user"),
    )

    id = Column(String, primary_key=True)
    content_id = Column("postId", String, nullable=False, index=True)
    user_id = Column("userId", String, nullable=False, index=True)
    created_at = Column("createdAt", Float, nullable=False)
