"""Feed registry: which feeds to pull from."""

from __future__ import annotations

import logging
from typing import Iterable, List, Mapping
from urllib.parse import urlparse

from .errors import ParseError
from .models import FeedConfig, FeedDescriptor

logger = logging.getLogger(__name__)


def feed_from_record(record: Mapping[str, object]) -> FeedDescriptor:
    """Build a FeedDescriptor from a registry record, validating required fields."""
    link = record.get("link")
    title = record.get("title")
    if not link or not title:
        raise ParseError(
            f"Feed record is expected to have `link` and `title` properties: {dict(record)}"
        )

    link = str(link).strip()
    parsed = urlparse(link)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ParseError(f"Feed record '{title}' has an invalid link: {link}")

    return FeedDescriptor(
        name=str(title).strip(),
        url=link,
        enabled=bool(record.get("enabled", True)),
        created=record.get("created"),
        last_modified=record.get("last_modified"),
    )


def list_enabled_feeds(store) -> List[FeedDescriptor]:
    """Return every enabled, well-formed feed in the registry."""
    try:
        records = store.query_enabled_feed_records()
    except Exception:
        logger.exception("Failed to query the feed registry")
        return []

    feeds: List[FeedDescriptor] = []
    for record in records:
        if not record.get("enabled", True):
            continue
        try:
            feeds.append(feed_from_record(record))
        except ParseError as exc:
            logger.error("Skipping feed: %s", exc)

    logger.info("Loaded %d enabled feeds from the registry", len(feeds))
    return feeds


def import_feeds(store, feeds: Iterable[FeedConfig]) -> int:
    """Register OPML feeds in the store, skipping URLs already present."""
    known = store.feed_urls()
    added = 0
    for feed in feeds:
        if feed.url in known:
            logger.debug("Feed already registered: %s", feed.url)
            continue
        store.add_feed(title=feed.title, link=feed.url)
        known.add(feed.url)
        added += 1
    logger.info("Registered %d new feeds", added)
    return added
