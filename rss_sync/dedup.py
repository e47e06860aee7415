"""Content fingerprints and the per-run dedup index."""

from __future__ import annotations

import hashlib
import logging
import threading
from datetime import datetime, timezone
from typing import Iterable, Optional, Set

from .models import ContentRecord

logger = logging.getLogger(__name__)


def _utc_isoformat(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat()


def fingerprint(title: str, link: str, published: datetime) -> str:
    """Return a stable MD5 hex digest identifying an item.

    Naive timestamps are read as UTC, aware ones are converted to UTC, so the
    same instant always hashes the same way regardless of the host time zone.
    """
    payload = "\n".join([title, link, _utc_isoformat(published)])
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


class DedupIndex:
    """Set of fingerprints already present in the store."""

    def __init__(self, fingerprints: Optional[Iterable[str]] = None):
        self._lock = threading.Lock()
        self._fingerprints: Set[str] = set(fingerprints or ())

    @classmethod
    def build(cls, records: Iterable[ContentRecord]) -> "DedupIndex":
        index = cls()
        skipped = 0
        for record in records:
            if not record.fingerprint:
                skipped += 1
                continue
            index._fingerprints.add(record.fingerprint)
        logger.info(
            "Dedup index built with %d fingerprints (%d records without one)",
            len(index),
            skipped,
        )
        return index

    def contains(self, value: str) -> bool:
        with self._lock:
            return value in self._fingerprints

    def add_if_absent(self, value: str) -> bool:
        """Insert the fingerprint; False if it was already indexed."""
        with self._lock:
            if value in self._fingerprints:
                return False
            self._fingerprints.add(value)
            return True

    def __contains__(self, value: object) -> bool:
        return isinstance(value, str) and self.contains(value)

    def __len__(self) -> int:
        with self._lock:
            return len(self._fingerprints)
