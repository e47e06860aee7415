"""Feed retrieval, parsing and normalisation."""

from __future__ import annotations

import calendar
import logging
import re
import time
from datetime import datetime, timezone
from typing import List, Optional

import feedparser
import requests
from bs4 import BeautifulSoup

from .dedup import fingerprint
from .errors import ParseError, SourceFetchError
from .models import FeedDescriptor, NormalizedItem, RawEntry

logger = logging.getLogger(__name__)

USER_AGENT = "rss-sync/0.1"

_CHAR_REFERENCE = re.compile(r"&#[0-9A-Fa-f]+;")


def to_datetime(value: Optional[time.struct_time]) -> datetime:
    """Convert feedparser timestamps (always UTC) to timezone-aware datetimes."""
    if value is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)


def _download(feed: FeedDescriptor, timeout: float) -> bytes:
    try:
        response = requests.get(
            feed.url, timeout=timeout, headers={"User-Agent": USER_AGENT}
        )
        response.raise_for_status()
    except requests.RequestException as exc:
        raise SourceFetchError(f"Failed to fetch feed '{feed.name}': {exc}") from exc
    return response.content


def _entry_description(entry) -> Optional[str]:
    summary = getattr(entry, "summary", None)
    if not summary:
        summary_detail = getattr(entry, "summary_detail", None)
        if summary_detail:
            summary = summary_detail.get("value")
    return summary or None


def _entry_content(entry) -> List[str]:
    content = getattr(entry, "content", None)
    if not content:
        return []
    values = []
    for part in content:
        try:
            value = part.get("value")
        except AttributeError:
            continue
        if value:
            values.append(value)
    return values


def _entry_categories(entry) -> List[str]:
    categories = []
    for tag in getattr(entry, "tags", None) or []:
        term = tag.get("term") if hasattr(tag, "get") else None
        if term and term.strip():
            categories.append(term.strip())
    return categories


def parse_feed(feed: FeedDescriptor, document: bytes) -> List[RawEntry]:
    """Parse a feed document into raw entries, keeping feed order."""
    parsed = feedparser.parse(document)
    if getattr(parsed, "bozo", False) and not parsed.entries:
        raise ParseError(
            f"Feed '{feed.name}' is not a valid feed: {getattr(parsed, 'bozo_exception', '')}"
        )

    entries: List[RawEntry] = []
    for entry in parsed.entries:
        link = getattr(entry, "link", None)
        title = getattr(entry, "title", None)

        if not link or not title:
            logger.debug("Skipping entry without link or title in feed '%s'", feed.url)
            continue

        published = None
        for attr in ("published_parsed", "updated_parsed", "created_parsed"):
            published = getattr(entry, attr, None)
            if published:
                break

        content = _entry_content(entry)
        description = _entry_description(entry)
        if description is None and content:
            description = content[0]

        entries.append(
            RawEntry(
                title=title,
                link=link,
                published=to_datetime(published),
                description=description,
                content=content,
                categories=_entry_categories(entry),
            )
        )
    return entries


def fetch_feed_entries(feed: FeedDescriptor, timeout: float = 10.0) -> List[RawEntry]:
    """Fetch entries from a single feed; failures are logged and yield nothing."""
    logger.info("Fetching feed '%s' (%s)", feed.name, feed.url)
    try:
        entries = parse_feed(feed, _download(feed, timeout))
    except (SourceFetchError, ParseError) as exc:
        logger.warning("%s", exc)
        return []

    logger.info("Collected %d entries from feed '%s'", len(entries), feed.url)
    return entries


def sanitize_description(raw_value: Optional[str]) -> str:
    """Return plain text extracted from an HTML fragment."""
    if not raw_value:
        return ""
    soup = BeautifulSoup(raw_value, "html.parser")
    text = soup.get_text(separator=" ", strip=True)
    text = _CHAR_REFERENCE.sub("", text)
    text = re.sub(r"\s+([.,;:!?])", r"\1", text)
    text = re.sub(r"\s{2,}", " ", text)
    return text.strip()


def extract_image_url(html: Optional[str]) -> Optional[str]:
    """Return the first absolute <img src> in the fragment, if any."""
    if not html:
        return None
    image = BeautifulSoup(html, "html.parser").find("img", src=True)
    if image is None:
        return None
    src = image["src"].strip()
    if src.startswith(("http://", "https://")):
        return src
    logger.error("Invalid image url found in <img>: %s", src)
    return None


def normalize_entry(entry: RawEntry, feed_name: str) -> NormalizedItem:
    """Turn a raw entry into a NormalizedItem with its fingerprint."""
    image_url = extract_image_url(" ".join(entry.content)) or extract_image_url(
        entry.description
    )
    return NormalizedItem(
        title=entry.title,
        link=entry.link,
        published=entry.published,
        description=sanitize_description(entry.description),
        feed_name=feed_name,
        fingerprint=fingerprint(entry.title, entry.link, entry.published),
        categories=list(entry.categories),
        content=list(entry.content),
        image_url=image_url,
    )


def fetch_feed_items(feed: FeedDescriptor, timeout: float = 10.0) -> List[NormalizedItem]:
    """Fetch a feed and normalise every entry.

    Raises SourceFetchError or ParseError so the caller can count the feed as
    failed.
    """
    logger.info("Fetching feed '%s' (%s)", feed.name, feed.url)
    entries = parse_feed(feed, _download(feed, timeout))
    logger.info("Collected %d entries from feed '%s'", len(entries), feed.url)
    return [normalize_entry(entry, feed.name) for entry in entries]
