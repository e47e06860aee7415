"""Concurrent feed ingestion with recency and dedup filtering."""

from __future__ import annotations

import concurrent.futures
import logging
import time
from datetime import datetime
from typing import Callable, Iterator, List, Optional, Sequence

from .dedup import DedupIndex
from .feeds import fetch_feed_items
from .models import FeedDescriptor, NormalizedItem

logger = logging.getLogger(__name__)

FetchFn = Callable[[FeedDescriptor, float], List[NormalizedItem]]


class IngestionPipeline:
    """Fan out over feeds and merge their items into one filtered stream.

    Every feed is fetched on its own worker thread. Items are delivered feed by
    feed in completion order, so a slow feed only delays itself. The consuming
    thread is the only one touching the dedup index.

    ``cutoff`` keeps items published strictly after it; ``None`` keeps
    everything. ``deadline`` bounds the whole fan-out in seconds; feeds still
    running when it expires are abandoned and reported as failed.
    """

    def __init__(
        self,
        feeds: Sequence[FeedDescriptor],
        index: DedupIndex,
        cutoff: Optional[datetime] = None,
        concurrency: int = 10,
        fetch: FetchFn = fetch_feed_items,
        timeout: float = 10.0,
        deadline: Optional[float] = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.feeds = list(feeds)
        self.index = index
        self.cutoff = cutoff
        self.concurrency = concurrency
        self.fetch = fetch
        self.timeout = timeout
        self.deadline = deadline

        self.failures: List[str] = []
        self.items_seen = 0
        self.items_too_old = 0
        self.items_duplicate = 0
        self.items_forwarded = 0

    @property
    def feeds_total(self) -> int:
        return len(self.feeds)

    @property
    def failed_feeds(self) -> int:
        return len(self.failures)

    def _fetch_feed(self, feed: FeedDescriptor) -> List[NormalizedItem]:
        items = self.fetch(feed, self.timeout)
        logger.debug("Feed '%s' produced %d items", feed.name, len(items))
        return items

    def _accept(self, item: NormalizedItem) -> bool:
        self.items_seen += 1
        if self.cutoff is not None and item.published <= self.cutoff:
            logger.debug(
                "Skipping entry not newer than cutoff (%s <= %s): %s",
                item.published,
                self.cutoff,
                item.link,
            )
            self.items_too_old += 1
            return False
        if not self.index.add_if_absent(item.fingerprint):
            logger.debug("Skipping already stored entry %s (%s)", item.link, item.fingerprint)
            self.items_duplicate += 1
            return False
        self.items_forwarded += 1
        return True

    def run(self) -> Iterator[NormalizedItem]:
        if not self.feeds:
            logger.info("No enabled feeds to ingest")
            return

        started = time.monotonic()
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=min(self.concurrency, len(self.feeds))
        )
        future_to_feed = {
            executor.submit(self._fetch_feed, feed): feed for feed in self.feeds
        }
        submitted = {future: position for position, future in enumerate(future_to_feed)}
        expires_at = None if self.deadline is None else started + self.deadline
        pending = set(future_to_feed)
        try:
            while pending:
                remaining = None
                if expires_at is not None:
                    remaining = max(0.0, expires_at - time.monotonic())
                # Futures that finished while the consumer was busy are still
                # collected here, even once the deadline has passed.
                done, pending = concurrent.futures.wait(
                    pending,
                    timeout=remaining,
                    return_when=concurrent.futures.FIRST_COMPLETED,
                )
                if not done:
                    break

                for future in sorted(done, key=submitted.get):
                    feed = future_to_feed[future]
                    try:
                        items = future.result()
                    except Exception as exc:
                        logger.exception("Failed to process feed %s", feed.url)
                        self.failures.append(f"{feed.name}: {exc}")
                        continue

                    for item in items:
                        if self._accept(item):
                            yield item

            for future in sorted(pending, key=submitted.get):
                feed = future_to_feed[future]
                future.cancel()
                logger.error(
                    "Abandoning feed %s after %.1fs deadline", feed.url, self.deadline
                )
                self.failures.append(f"{feed.name}: deadline exceeded")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(
            "Ingested %d feeds in %.1fs: %d items seen, %d forwarded, "
            "%d duplicates, %d too old, %d feeds failed",
            self.feeds_total,
            time.monotonic() - started,
            self.items_seen,
            self.items_forwarded,
            self.items_duplicate,
            self.items_too_old,
            self.failed_feeds,
        )

    def __iter__(self) -> Iterator[NormalizedItem]:
        return self.run()
