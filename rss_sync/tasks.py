"""Independent units of work run against the store."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from .dedup import DedupIndex
from .errors import AggregateFailure, IndexBuildError
from .feeds import fetch_feed_items
from .models import FeedDescriptor, TaskResult
from .pipeline import FetchFn, IngestionPipeline
from .registry import list_enabled_feeds
from .retention import RetentionPolicy

logger = logging.getLogger(__name__)


def build_dedup_index(store) -> DedupIndex:
    """Rebuild the dedup index from every stored record.

    Archived records are included. A failing query degrades to an empty index:
    the run still ingests, at worst with duplicates.
    """
    try:
        records = store.query_all_content_records(include_archived=True)
    except Exception as exc:
        error = IndexBuildError(f"Could not build dedup index: {exc}")
        logger.warning("%s; continuing without deduplication against the store", error)
        return DedupIndex()
    return DedupIndex.build(records)


def archive_old_unstarred_content(
    store, now: datetime, retention_days: float = 30
) -> TaskResult:
    """Archive content created more than ``retention_days`` before ``now`` and not starred."""
    cutoff = now - timedelta(days=retention_days)
    policy = RetentionPolicy(store)
    return policy.archive(policy.select_expired(cutoff))


def add_new_content(
    store,
    index: DedupIndex,
    cutoff: Optional[datetime] = None,
    feeds: Optional[Sequence[FeedDescriptor]] = None,
    concurrency: int = 10,
    timeout: float = 10.0,
    deadline: Optional[float] = None,
    fetch: Optional[FetchFn] = None,
) -> TaskResult:
    """Ingest new items from every enabled feed, writing each one to the store.

    A failed write does not stop the remaining items; failures are only
    reported once everything has been attempted.
    """
    if feeds is None:
        feeds = list_enabled_feeds(store)

    pipeline = IngestionPipeline(
        feeds,
        index,
        cutoff=cutoff,
        concurrency=concurrency,
        fetch=fetch or fetch_feed_items,
        timeout=timeout,
        deadline=deadline,
    )
    result = TaskResult(name="ingest")
    for item in pipeline:
        try:
            store.create_content_record(item)
        except Exception as exc:
            logger.error(
                "Could not create record for %s, URL: %s. Error: %s",
                item.title,
                item.link,
                exc,
            )
            result.record_failure(f"{item.link}: {exc}")
        else:
            result.record_success()

    result.warnings.extend(f"feed {failure}" for failure in pipeline.failures)
    if not result.ok:
        logger.error(
            "%d item(s) failed to be created in the store. See errors above",
            result.failed,
        )
    return result


def raise_on_failures(results: Iterable[TaskResult]) -> None:
    """Raise a single AggregateFailure if any task reported failures."""
    failed = [result for result in results if not result.ok]
    if not failed:
        return
    for result in failed:
        logger.error("%s", result.summary())
    if len(failed) == 1:
        raise AggregateFailure(failed[0].summary(), failed)
    raise AggregateFailure("Multiple errors occurred. Check output for details", failed)
