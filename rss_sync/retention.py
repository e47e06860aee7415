"""Selection and archival of stale, unstarred content."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List

from .db import as_utc
from .models import ContentRecord, TaskResult

logger = logging.getLogger(__name__)


def is_expired(record: ContentRecord, cutoff: datetime) -> bool:
    """A record expires when created strictly before the cutoff and not starred."""
    return not record.starred and as_utc(record.created) < as_utc(cutoff)


class RetentionPolicy:
    """Archive content older than a caller-supplied cutoff unless starred.

    Age is the record's creation time in the store, not the item's
    publication date.
    """

    def __init__(self, store):
        self.store = store

    def select_expired(self, cutoff: datetime) -> List[int]:
        try:
            records = self.store.query_all_content_records()
        except Exception:
            logger.exception("Failed to query content records for retention")
            return []
        expired = [record.id for record in records if is_expired(record, cutoff)]
        logger.info(
            "Selected %d of %d records created before %s for archival",
            len(expired),
            len(records),
            cutoff,
        )
        return expired

    def archive(self, ids: Iterable[int]) -> TaskResult:
        """Archive every id, even when some of them fail."""
        result = TaskResult(name="archive")
        for record_id in ids:
            try:
                self.store.archive_record(record_id)
            except Exception as exc:
                logger.error("Failed to archive record %s: %s", record_id, exc)
                result.record_failure(f"record {record_id}: {exc}")
            else:
                result.record_success()
        if result.ok:
            logger.info("Archived %d records", result.succeeded)
        else:
            logger.error(
                "Failed to archive %d of %d records", result.failed, result.attempted
            )
        return result
