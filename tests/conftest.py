from datetime import datetime, timezone
from typing import Optional

import pytest

from rss_sync import db
from rss_sync.models import ContentRecord, NormalizedItem


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = db.init_engine("sqlite://")
    yield db.get_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return db.SqlStore(session_factory)


@pytest.fixture
def add_content(session_factory):
    """Insert a content row directly, with full control over timestamps and flags."""

    def _add(
        created: datetime,
        starred: bool = False,
        fingerprint: Optional[str] = None,
        archived: bool = False,
        title: str = "Title",
    ) -> int:
        row = db.ContentModel(
            title=title,
            link=f"https://example.com/{title}",
            categories=[],
            created=created,
            starred=starred,
            fingerprint=fingerprint,
            archived=archived,
        )
        with session_factory() as session:
            session.add(row)
            session.commit()
            return row.id

    return _add


def make_item(
    fingerprint: str,
    feed_name: str = "Feed",
    published: Optional[datetime] = None,
    title: Optional[str] = None,
) -> NormalizedItem:
    return NormalizedItem(
        title=title or f"Item {fingerprint}",
        link=f"https://example.com/{fingerprint}",
        published=published or datetime(2024, 1, 1, tzinfo=timezone.utc),
        description="Description",
        feed_name=feed_name,
        fingerprint=fingerprint,
    )


class FakeStore:
    """In-memory store collaborator with switchable failures."""

    def __init__(self, records=(), feed_records=()):
        self.records = list(records)
        self.feed_records = list(feed_records)
        self.created = []
        self.archived = []
        self.fail_create_for = set()
        self.fail_archive_for = set()
        self.fail_queries = False

    def query_all_content_records(self, include_archived: bool = False):
        if self.fail_queries:
            raise RuntimeError("store unavailable")
        return list(self.records)

    def query_enabled_feed_records(self):
        if self.fail_queries:
            raise RuntimeError("store unavailable")
        return list(self.feed_records)

    def create_content_record(self, item):
        if item.fingerprint in self.fail_create_for:
            raise RuntimeError(f"cannot create {item.fingerprint}")
        self.created.append(item)
        return len(self.created)

    def archive_record(self, record_id):
        if record_id in self.fail_archive_for:
            raise RuntimeError(f"cannot archive {record_id}")
        self.archived.append(record_id)


@pytest.fixture
def fake_store():
    return FakeStore()


def record(record_id: int, created: datetime, starred: bool = False, fingerprint=None):
    return ContentRecord(
        id=record_id, created=created, starred=starred, fingerprint=fingerprint
    )
