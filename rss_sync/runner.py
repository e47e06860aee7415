"""High-level orchestration for the rss_sync application."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .config import parse_feeds_config
from .db import SqlStore
from .models import TaskResult
from .registry import import_feeds
from .tasks import add_new_content, archive_old_unstarred_content, build_dedup_index

logger = logging.getLogger(__name__)


@dataclass
class RunConfig:
    """Runtime options for executing the application."""

    database_connection_string: str
    retention_days: float = 30.0
    max_age_hours: Optional[float] = None
    concurrency: int = 10
    fetch_timeout: float = 10.0
    deadline: Optional[float] = None
    import_feeds_path: Optional[str] = None
    archive: bool = True
    ingest: bool = True


@dataclass
class RunResult:
    """Per-task outcomes of one run."""

    results: List[TaskResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.results)


def _run_task(name: str, func, *args, **kwargs) -> TaskResult:
    try:
        return func(*args, **kwargs)
    except Exception as exc:
        logger.exception("Task %s failed unexpectedly", name)
        result = TaskResult(name=name)
        result.record_failure(str(exc))
        return result


def execute(
    config: RunConfig, now: Optional[datetime] = None, store=None
) -> RunResult:
    """Run the archive and ingest tasks and return their results."""
    now = now or datetime.now(timezone.utc)
    if store is None:
        store = SqlStore.from_url(config.database_connection_string)

    if config.import_feeds_path:
        import_feeds(store, parse_feeds_config(config.import_feeds_path))

    cutoff: Optional[datetime] = None
    if config.max_age_hours is not None:
        if config.max_age_hours <= 0:
            raise ValueError("max_age_hours must be positive.")
        cutoff = now - timedelta(hours=config.max_age_hours)
        logger.info("Applying article cutoff: newer than %s", cutoff)

    run = RunResult()
    if config.archive:
        run.results.append(
            _run_task(
                "archive",
                archive_old_unstarred_content,
                store,
                now,
                retention_days=config.retention_days,
            )
        )

    if config.ingest:
        index = build_dedup_index(store)
        run.results.append(
            _run_task(
                "ingest",
                add_new_content,
                store,
                index,
                cutoff=cutoff,
                concurrency=config.concurrency,
                timeout=config.fetch_timeout,
                deadline=config.deadline,
            )
        )

    for result in run.results:
        logger.info("%s", result.summary())
    return run
