"""Shared data models for rss_sync."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class FeedConfig:
    """A feed declared in an OPML file."""

    category: str
    title: str
    url: str


@dataclass(frozen=True)
class FeedDescriptor:
    """An enabled feed read from the registry."""

    name: str
    url: str
    enabled: bool = True
    created: Optional[datetime] = None
    last_modified: Optional[datetime] = None


@dataclass
class RawEntry:
    """One entry as yielded by the feed parser."""

    title: str
    link: str
    published: datetime
    description: Optional[str] = None
    content: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)


@dataclass
class NormalizedItem:
    """A feed entry ready for deduplication and persistence."""

    title: str
    link: str
    published: datetime
    description: str
    feed_name: str
    fingerprint: str
    categories: List[str] = field(default_factory=list)
    content: List[str] = field(default_factory=list)
    image_url: Optional[str] = None


@dataclass(frozen=True)
class ContentRecord:
    """Stored content row as seen by dedup and retention."""

    id: int
    created: datetime
    starred: bool = False
    fingerprint: Optional[str] = None


@dataclass
class TaskResult:
    """Outcome of one task: every unit attempted, failures kept for the summary."""

    name: str
    attempted: int = 0
    succeeded: int = 0
    failures: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures

    def record_success(self) -> None:
        self.attempted += 1
        self.succeeded += 1

    def record_failure(self, reason: str) -> None:
        self.attempted += 1
        self.failures.append(reason)

    def summary(self) -> str:
        if self.ok:
            text = f"{self.name}: {self.succeeded}/{self.attempted} succeeded"
        else:
            text = f"{self.name}: {self.failed} of {self.attempted} failed"
        if self.warnings:
            text += f" ({len(self.warnings)} warnings)"
        return text
