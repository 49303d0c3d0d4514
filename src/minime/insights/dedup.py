"""Windowed content-signature deduplication.

A candidate whose signature matches a live window entry is merged into the
existing insight instead of creating a new row. The in-memory index is only
a cache: a miss falls back to the record store so a restart does not reopen
the window.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from .models import CandidateInsight
from .store import RecordStore

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def _normalize(value: Optional[str]) -> str:
    if not value:
        return ""
    return _WHITESPACE.sub(" ", value).strip().lower()


def content_signature(candidate: CandidateInsight) -> str:
    """Stable SHA-256 over type, category, subcategory and sorted entities."""
    entities = sorted({_normalize(e) for e in candidate.entities if _normalize(e)})
    material = "|".join(
        [
            _normalize(candidate.insight_type),
            _normalize(candidate.category),
            _normalize(candidate.subcategory),
            ",".join(entities),
        ]
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def merge_confidence(existing: float, candidate: float) -> float:
    """Blend confidences, weighting 0.6 toward whichever value is higher."""
    if candidate <= existing:
        return existing * 0.6 + candidate * 0.4
    return existing * 0.4 + candidate * 0.6


@dataclass
class DedupWindowEntry:
    signature: str
    insight_id: str
    confidence: float
    expires_at: datetime


class Deduplicator:
    """Signature index with lazy eviction and a periodic sweep.

    Callers must hold ``lock_for(signature)`` across lookup, persist and
    register so two concurrent candidates with one signature cannot both
    create rows.
    """

    def __init__(
        self,
        store: RecordStore,
        window: timedelta,
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._store = store
        self.window = window
        self._clock = clock
        self._index: Dict[str, DedupWindowEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._index)

    def lock_for(self, signature: str) -> asyncio.Lock:
        lock = self._locks.get(signature)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[signature] = lock
        return lock

    async def lookup(self, signature: str) -> Optional[DedupWindowEntry]:
        """Return the live entry for ``signature`` or ``None``."""
        now = self._clock()
        entry = self._index.get(signature)
        if entry is not None:
            if entry.expires_at > now:
                return entry
            del self._index[signature]

        existing = await self._store.find_insight_by_signature(signature, now - self.window)
        if existing is None:
            return None
        entry = DedupWindowEntry(
            signature=signature,
            insight_id=existing.id,
            confidence=existing.confidence,
            expires_at=existing.created_at + self.window,
        )
        self._index[signature] = entry
        logger.debug(
            "Dedup window entry restored from store",
            extra={"signature": signature[:12], "insight_id": existing.id},
        )
        return entry

    def register(
        self,
        signature: str,
        insight_id: str,
        confidence: float,
        created_at: Optional[datetime] = None,
    ) -> DedupWindowEntry:
        start = created_at or self._clock()
        entry = DedupWindowEntry(
            signature=signature,
            insight_id=insight_id,
            confidence=confidence,
            expires_at=start + self.window,
        )
        self._index[signature] = entry
        return entry

    def record_merge(self, signature: str, confidence: float) -> None:
        # The window stays anchored on the original registration.
        entry = self._index.get(signature)
        if entry is not None:
            entry.confidence = confidence

    def forget(self, signature: str) -> None:
        self._index.pop(signature, None)

    def sweep(self) -> int:
        """Evict expired entries and idle locks; returns the evicted count."""
        now = self._clock()
        expired = [sig for sig, entry in self._index.items() if entry.expires_at <= now]
        for sig in expired:
            del self._index[sig]
        for sig in [s for s, lock in self._locks.items() if not lock.locked() and s not in self._index]:
            del self._locks[sig]
        if expired:
            logger.info("Dedup window swept", extra={"evicted": len(expired)})
        return len(expired)
