"""SQLAlchemy-backed document store for feeds and ingested content."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    create_engine,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import PersistenceError
from .models import ContentRecord, NormalizedItem

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo on the way back; treat naive values as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class FeedModel(Base):
    """Registry of feeds to pull from."""

    __tablename__ = "feeds"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=True)
    link = Column(String, nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)
    created = Column(DateTime(timezone=True), default=_utcnow)
    last_modified = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class ContentModel(Base):
    """One ingested feed item."""

    __tablename__ = "content"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    link = Column(String, nullable=False)
    categories = Column(JSON, nullable=False, default=list)
    origin = Column(String, nullable=True)
    published = Column(DateTime(timezone=True), nullable=True)
    fingerprint = Column(String(64), nullable=True, index=True)
    cover_image_url = Column(String, nullable=True)
    embed_url = Column(String, nullable=True)
    starred = Column(Boolean, nullable=False, default=False)
    archived = Column(Boolean, nullable=False, default=False)
    created = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


def init_engine(connection_string: Optional[str]) -> Optional[Engine]:
    """Initialize the database engine and create missing tables."""
    if not connection_string:
        return None

    logger.info("Initializing database connection")
    kwargs = {}
    if connection_string in ("sqlite://", "sqlite:///:memory:"):
        # A single shared connection keeps the in-memory database alive across sessions.
        kwargs = {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    engine = create_engine(connection_string, **kwargs)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory for the given engine."""
    return sessionmaker(bind=engine, expire_on_commit=False)


class SqlStore:
    """Store collaborator used by the registry, pipeline writer and retention."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, connection_string: str) -> "SqlStore":
        return cls(get_session_factory(init_engine(connection_string)))

    def query_all_content_records(
        self, include_archived: bool = False
    ) -> List[ContentRecord]:
        stmt = select(
            ContentModel.id,
            ContentModel.created,
            ContentModel.starred,
            ContentModel.fingerprint,
        ).order_by(ContentModel.id)
        if not include_archived:
            stmt = stmt.where(ContentModel.archived.is_(False))

        with self._session_factory() as session:
            rows = session.execute(stmt).all()
        return [
            ContentRecord(
                id=row.id,
                created=as_utc(row.created),
                starred=bool(row.starred),
                fingerprint=row.fingerprint,
            )
            for row in rows
        ]

    def query_enabled_feed_records(self) -> List[Dict[str, object]]:
        stmt = select(FeedModel).where(FeedModel.enabled.is_(True)).order_by(FeedModel.id)
        with self._session_factory() as session:
            feeds = session.execute(stmt).scalars().all()
        return [
            {
                "link": feed.link,
                "title": feed.title,
                "enabled": feed.enabled,
                "created": as_utc(feed.created),
                "last_modified": as_utc(feed.last_modified),
            }
            for feed in feeds
        ]

    def create_content_record(self, item: NormalizedItem) -> int:
        record = ContentModel(
            title=item.title,
            description=item.description,
            link=item.link,
            categories=list(item.categories),
            origin=item.feed_name,
            published=item.published,
            fingerprint=item.fingerprint,
            cover_image_url=item.image_url,
            embed_url=item.link,
        )
        with self._session_factory() as session:
            session.add(record)
            try:
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise PersistenceError(
                    f"Could not create record for {item.link}: {exc}"
                ) from exc
            return record.id

    def archive_record(self, record_id: int) -> None:
        with self._session_factory() as session:
            record = session.get(ContentModel, record_id)
            if record is None:
                raise PersistenceError(f"No content record with id {record_id}")
            record.archived = True
            try:
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise PersistenceError(
                    f"Could not archive record {record_id}: {exc}"
                ) from exc

    def set_starred(self, record_id: int, starred: bool = True) -> None:
        with self._session_factory() as session:
            record = session.get(ContentModel, record_id)
            if record is None:
                raise PersistenceError(f"No content record with id {record_id}")
            record.starred = starred
            session.commit()

    def add_feed(self, title: str, link: str, enabled: bool = True) -> int:
        feed = FeedModel(title=title, link=link, enabled=enabled)
        with self._session_factory() as session:
            session.add(feed)
            session.commit()
            return feed.id

    def feed_urls(self) -> Set[str]:
        with self._session_factory() as session:
            links = session.execute(select(FeedModel.link)).scalars().all()
        return {link for link in links if link}
