"""Record store for memories and insights.

``RecordStore`` is the contract the pipeline depends on. ``SQLiteRecordStore``
is the bundled implementation: a single SQLite file in WAL mode, one
connection guarded by a lock, every write inside a transaction. Calls are
pushed off the event loop with ``asyncio.to_thread`` so a slow disk never
stalls the scheduler.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from .models import (
    MemoryRecord,
    MemoryStatus,
    PersistedInsight,
    SourceType,
    ValidationStatus,
)

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS memories (
    id TEXT PRIMARY KEY,
    memory_type TEXT NOT NULL,
    content TEXT NOT NULL,
    project_id TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    attempts INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    importance_score REAL NOT NULL DEFAULT 0.5,
    tags TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_memories_status ON memories(status);

CREATE TABLE IF NOT EXISTS insights (
    id TEXT PRIMARY KEY,
    insight_type TEXT NOT NULL,
    category TEXT NOT NULL,
    subcategory TEXT,
    title TEXT NOT NULL DEFAULT '',
    summary TEXT NOT NULL DEFAULT '',
    confidence REAL NOT NULL,
    relevance REAL,
    impact REAL,
    signature TEXT NOT NULL,
    source_type TEXT NOT NULL,
    source_ids TEXT NOT NULL DEFAULT '[]',
    project_id TEXT,
    entities TEXT NOT NULL DEFAULT '[]',
    technologies TEXT NOT NULL DEFAULT '[]',
    tags TEXT NOT NULL DEFAULT '[]',
    evidence TEXT NOT NULL DEFAULT '[]',
    related_ids TEXT NOT NULL DEFAULT '[]',
    supersedes_ids TEXT NOT NULL DEFAULT '[]',
    contradicts_ids TEXT NOT NULL DEFAULT '[]',
    superseded_by TEXT,
    validation_status TEXT NOT NULL,
    detection_method TEXT NOT NULL,
    archived INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    patterns TEXT NOT NULL DEFAULT '[]',
    recommendations TEXT NOT NULL DEFAULT '[]'
);

CREATE INDEX IF NOT EXISTS idx_insights_signature ON insights(signature, created_at);
CREATE INDEX IF NOT EXISTS idx_insights_project ON insights(project_id, category);
"""

_INSIGHT_COLUMNS = (
    "id, insight_type, category, subcategory, title, summary, confidence, relevance, "
    "impact, signature, source_type, source_ids, project_id, entities, technologies, "
    "tags, evidence, related_ids, supersedes_ids, contradicts_ids, superseded_by, "
    "validation_status, detection_method, archived, created_at, updated_at, "
    "patterns, recommendations"
)

_MEMORY_COLUMNS = (
    "id, memory_type, content, project_id, status, attempts, last_error, "
    "importance_score, tags, created_at, updated_at"
)


def _ts(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


class RecordStore(Protocol):
    """Durable storage for memory records and insights."""

    async def add_memory(self, record: MemoryRecord) -> None: ...

    async def get_memory(self, memory_id: str) -> Optional[MemoryRecord]: ...

    async def fetch_unprocessed(
        self,
        limit: int,
        *,
        exclude_ids: Iterable[str] = (),
        max_attempts: Optional[int] = None,
    ) -> List[MemoryRecord]: ...

    async def update_memory_status(
        self,
        memory_id: str,
        status: MemoryStatus,
        *,
        attempts: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None: ...

    async def reset_interrupted(self, exclude_ids: Iterable[str] = ()) -> List[str]: ...

    async def insert_insight(self, insight: PersistedInsight) -> PersistedInsight: ...

    async def update_insight(self, insight: PersistedInsight) -> None: ...

    async def apply_merge(self, insight: PersistedInsight) -> None: ...

    async def save_enrichment(self, insight: PersistedInsight) -> None: ...

    async def mark_superseded(
        self, insight_id: str, superseded_by: str, updated_at: datetime
    ) -> bool: ...

    async def get_insight(self, insight_id: str) -> Optional[PersistedInsight]: ...

    async def find_insight_by_signature(
        self, signature: str, since: datetime
    ) -> Optional[PersistedInsight]: ...

    async def find_related_insights(
        self, insight: PersistedInsight, limit: int = 20
    ) -> List[PersistedInsight]: ...

    async def find_supersedable_insights(
        self, insight: PersistedInsight, older_than: datetime, limit: int = 5
    ) -> List[PersistedInsight]: ...

    async def archive_insights(self, older_than: datetime) -> int: ...


class SQLiteRecordStore:
    """SQLite-backed ``RecordStore``."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        if str(path) != ":memory:":
            self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(SCHEMA)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _memory_from_row(row: Sequence) -> MemoryRecord:
        return MemoryRecord(
            id=row[0],
            memory_type=row[1],
            content=row[2],
            project_id=row[3],
            status=MemoryStatus(row[4]),
            attempts=row[5],
            last_error=row[6],
            importance_score=row[7],
            tags=json.loads(row[8]),
            created_at=_parse_ts(row[9]),
            updated_at=_parse_ts(row[10]),
        )

    @staticmethod
    def _insight_from_row(row: Sequence) -> PersistedInsight:
        return PersistedInsight(
            id=row[0],
            insight_type=row[1],
            category=row[2],
            subcategory=row[3],
            title=row[4],
            summary=row[5],
            confidence=row[6],
            relevance=row[7],
            impact=row[8],
            signature=row[9],
            source_type=SourceType(row[10]),
            source_ids=json.loads(row[11]),
            project_id=row[12],
            entities=json.loads(row[13]),
            technologies=json.loads(row[14]),
            tags=json.loads(row[15]),
            evidence=json.loads(row[16]),
            related_ids=json.loads(row[17]),
            supersedes_ids=json.loads(row[18]),
            contradicts_ids=json.loads(row[19]),
            superseded_by=row[20],
            validation_status=ValidationStatus(row[21]),
            detection_method=row[22],
            archived=bool(row[23]),
            created_at=_parse_ts(row[24]),
            updated_at=_parse_ts(row[25]),
            patterns=json.loads(row[26]),
            recommendations=json.loads(row[27]),
        )

    @staticmethod
    def _insight_params(insight: PersistedInsight) -> tuple:
        return (
            insight.id,
            insight.insight_type,
            insight.category,
            insight.subcategory,
            insight.title,
            insight.summary,
            insight.confidence,
            insight.relevance,
            insight.impact,
            insight.signature,
            insight.source_type.value,
            json.dumps(insight.source_ids),
            insight.project_id,
            json.dumps(insight.entities),
            json.dumps(insight.technologies),
            json.dumps(insight.tags),
            json.dumps(insight.evidence),
            json.dumps(insight.related_ids),
            json.dumps(insight.supersedes_ids),
            json.dumps(insight.contradicts_ids),
            insight.superseded_by,
            insight.validation_status.value,
            insight.detection_method,
            int(insight.archived),
            _ts(insight.created_at),
            _ts(insight.updated_at),
            json.dumps(insight.patterns),
            json.dumps(insight.recommendations),
        )

    # ------------------------------------------------------------------
    # Memories
    # ------------------------------------------------------------------

    def _add_memory(self, record: MemoryRecord) -> None:
        with self._lock:
            with self._conn:
                self._conn.execute(
                    f"""
                    INSERT OR REPLACE INTO memories({_MEMORY_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        record.memory_type,
                        record.content,
                        record.project_id,
                        record.status.value,
                        record.attempts,
                        record.last_error,
                        record.importance_score,
                        json.dumps(record.tags),
                        _ts(record.created_at),
                        _ts(record.updated_at),
                    ),
                )

    def _get_memory(self, memory_id: str) -> Optional[MemoryRecord]:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_MEMORY_COLUMNS} FROM memories WHERE id = ?", (memory_id,)
            ).fetchone()
        return self._memory_from_row(row) if row else None

    def _fetch_unprocessed(
        self,
        limit: int,
        exclude_ids: Iterable[str],
        max_attempts: Optional[int],
    ) -> List[MemoryRecord]:
        excluded = list(exclude_ids)
        clauses = ["status IN ('pending', 'failed')"]
        params: List = []
        if max_attempts is not None:
            clauses.append("attempts < ?")
            params.append(max_attempts)
        if excluded:
            clauses.append(f"id NOT IN ({', '.join('?' for _ in excluded)})")
            params.extend(excluded)
        params.append(limit)
        with self._lock:
            rows = self._conn.execute(
                f"""
                SELECT {_MEMORY_COLUMNS} FROM memories
                WHERE {' AND '.join(clauses)}
                ORDER BY importance_score DESC, created_at ASC
                LIMIT ?
                """,
                params,
            ).fetchall()
        return [self._memory_from_row(row) for row in rows]

    def _update_memory_status(
        self,
        memory_id: str,
        status: MemoryStatus,
        attempts: Optional[int],
        error: Optional[str],
    ) -> None:
        with self._lock:
            with self._conn:
                self._conn.execute(
                    """
                    UPDATE memories
                    SET status = ?,
                        attempts = COALESCE(?, attempts),
                        last_error = ?,
                        updated_at = ?
                    WHERE id = ?
                    """,
                    (status.value, attempts, error, _ts(datetime.utcnow()), memory_id),
                )

    def _reset_interrupted(self, exclude_ids: List[str]) -> List[str]:
        exclusion = ""
        if exclude_ids:
            exclusion = f"AND id NOT IN ({', '.join('?' for _ in exclude_ids)})"
        with self._lock:
            with self._conn:
                rows = self._conn.execute(
                    f"SELECT id FROM memories WHERE status = 'processing' {exclusion}",
                    exclude_ids,
                ).fetchall()
                ids = [row[0] for row in rows]
                self._conn.executemany(
                    "UPDATE memories SET status = 'pending', updated_at = ? WHERE id = ?",
                    [(_ts(datetime.utcnow()), memory_id) for memory_id in ids],
                )
        return ids

    def _count_memories_by_status(self) -> Dict[str, int]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT status, COUNT(*) FROM memories GROUP BY status"
            ).fetchall()
        counts = {status.value: 0 for status in MemoryStatus}
        counts.update({status: int(count) for status, count in rows})
        return counts

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    def _insert_insight(self, insight: PersistedInsight) -> PersistedInsight:
        with self._lock:
            with self._conn:
                self._conn.execute(
                    f"INSERT INTO insights({_INSIGHT_COLUMNS}) VALUES ({', '.join('?' * 28)})",
                    self._insight_params(insight),
                )
        return insight

    def _update_insight(self, insight: PersistedInsight) -> None:
        with self._lock:
            with self._conn:
                self._conn.execute(
                    f"INSERT OR REPLACE INTO insights({_INSIGHT_COLUMNS}) VALUES ({', '.join('?' * 28)})",
                    self._insight_params(insight),
                )

    def _apply_merge(self, insight: PersistedInsight) -> None:
        with self._lock:
            with self._conn:
                self._conn.execute(
                    """
                    UPDATE insights
                    SET confidence = ?, source_ids = ?, technologies = ?, tags = ?,
                        evidence = ?, recommendations = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        insight.confidence,
                        json.dumps(insight.source_ids),
                        json.dumps(insight.technologies),
                        json.dumps(insight.tags),
                        json.dumps(insight.evidence),
                        json.dumps(insight.recommendations),
                        _ts(insight.updated_at),
                        insight.id,
                    ),
                )

    def _save_enrichment(self, insight: PersistedInsight) -> None:
        with self._lock:
            with self._conn:
                self._conn.execute(
                    """
                    UPDATE insights
                    SET technologies = ?, tags = ?, evidence = ?, patterns = ?,
                        recommendations = ?, related_ids = ?, supersedes_ids = ?,
                        contradicts_ids = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        json.dumps(insight.technologies),
                        json.dumps(insight.tags),
                        json.dumps(insight.evidence),
                        json.dumps(insight.patterns),
                        json.dumps(insight.recommendations),
                        json.dumps(insight.related_ids),
                        json.dumps(insight.supersedes_ids),
                        json.dumps(insight.contradicts_ids),
                        _ts(insight.updated_at),
                        insight.id,
                    ),
                )

    def _mark_superseded(
        self, insight_id: str, superseded_by: str, updated_at: datetime
    ) -> bool:
        with self._lock:
            with self._conn:
                cursor = self._conn.execute(
                    """
                    UPDATE insights SET superseded_by = ?, updated_at = ?
                    WHERE id = ? AND superseded_by IS NULL
                    """,
                    (superseded_by, _ts(updated_at), insight_id),
                )
        return cursor.rowcount == 1

    def _get_insight(self, insight_id: str) -> Optional[PersistedInsight]:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_INSIGHT_COLUMNS} FROM insights WHERE id = ?", (insight_id,)
            ).fetchone()
        return self._insight_from_row(row) if row else None

    def _find_insight_by_signature(
        self, signature: str, since: datetime
    ) -> Optional[PersistedInsight]:
        with self._lock:
            row = self._conn.execute(
                f"""
                SELECT {_INSIGHT_COLUMNS} FROM insights
                WHERE signature = ? AND created_at > ? AND archived = 0
                ORDER BY created_at DESC
                LIMIT 1
                """,
                (signature, _ts(since)),
            ).fetchone()
        return self._insight_from_row(row) if row else None

    def _find_related_insights(
        self, insight: PersistedInsight, limit: int
    ) -> List[PersistedInsight]:
        with self._lock:
            rows = self._conn.execute(
                f"""
                SELECT {_INSIGHT_COLUMNS} FROM insights
                WHERE id != ? AND archived = 0 AND project_id IS ?
                ORDER BY created_at DESC
                LIMIT 500
                """,
                (insight.id, insight.project_id),
            ).fetchall()

        keys = {k.lower() for k in insight.technologies + insight.entities}
        sources = set(insight.source_ids)
        related: List[PersistedInsight] = []
        for row in rows:
            candidate = self._insight_from_row(row)
            candidate_keys = {k.lower() for k in candidate.technologies + candidate.entities}
            if (
                candidate.category == insight.category
                or keys & candidate_keys
                or sources & set(candidate.source_ids)
            ):
                related.append(candidate)
            if len(related) >= limit:
                break
        return related

    def _find_supersedable_insights(
        self, insight: PersistedInsight, older_than: datetime, limit: int
    ) -> List[PersistedInsight]:
        with self._lock:
            rows = self._conn.execute(
                f"""
                SELECT {_INSIGHT_COLUMNS} FROM insights
                WHERE id != ?
                  AND insight_type = ?
                  AND category = ?
                  AND confidence < ?
                  AND created_at < ?
                  AND validation_status != 'validated'
                  AND superseded_by IS NULL
                  AND archived = 0
                ORDER BY created_at ASC
                LIMIT ?
                """,
                (
                    insight.id,
                    insight.insight_type,
                    insight.category,
                    insight.confidence,
                    _ts(older_than),
                    limit,
                ),
            ).fetchall()
        return [self._insight_from_row(row) for row in rows]

    def _query_insights(
        self,
        insight_type: Optional[str],
        category: Optional[str],
        project_id: Optional[str],
        min_confidence: Optional[float],
        include_archived: bool,
        limit: int,
    ) -> List[PersistedInsight]:
        clauses: List[str] = []
        params: List = []
        if insight_type:
            clauses.append("insight_type = ?")
            params.append(insight_type)
        if category:
            clauses.append("category = ?")
            params.append(category)
        if project_id:
            clauses.append("project_id = ?")
            params.append(project_id)
        if min_confidence is not None:
            clauses.append("confidence >= ?")
            params.append(min_confidence)
        if not include_archived:
            clauses.append("archived = 0")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        with self._lock:
            rows = self._conn.execute(
                f"""
                SELECT {_INSIGHT_COLUMNS} FROM insights
                {where}
                ORDER BY confidence DESC, created_at DESC
                LIMIT ?
                """,
                params,
            ).fetchall()
        return [self._insight_from_row(row) for row in rows]

    def _archive_insights(self, older_than: datetime) -> int:
        with self._lock:
            with self._conn:
                cursor = self._conn.execute(
                    "UPDATE insights SET archived = 1, updated_at = ? WHERE archived = 0 AND created_at < ?",
                    (_ts(datetime.utcnow()), _ts(older_than)),
                )
        return cursor.rowcount

    def _count_insights(self, include_archived: bool) -> int:
        query = "SELECT COUNT(*) FROM insights"
        if not include_archived:
            query += " WHERE archived = 0"
        with self._lock:
            row = self._conn.execute(query).fetchone()
        return int(row[0]) if row else 0

    # ------------------------------------------------------------------
    # Async surface
    # ------------------------------------------------------------------

    async def add_memory(self, record: MemoryRecord) -> None:
        await asyncio.to_thread(self._add_memory, record)

    async def get_memory(self, memory_id: str) -> Optional[MemoryRecord]:
        return await asyncio.to_thread(self._get_memory, memory_id)

    async def fetch_unprocessed(
        self,
        limit: int,
        *,
        exclude_ids: Iterable[str] = (),
        max_attempts: Optional[int] = None,
    ) -> List[MemoryRecord]:
        return await asyncio.to_thread(
            self._fetch_unprocessed, limit, list(exclude_ids), max_attempts
        )

    async def update_memory_status(
        self,
        memory_id: str,
        status: MemoryStatus,
        *,
        attempts: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        await asyncio.to_thread(
            self._update_memory_status, memory_id, status, attempts, error
        )

    async def reset_interrupted(self, exclude_ids: Iterable[str] = ()) -> List[str]:
        """Return records left in ``processing`` to ``pending``.

        Attempts are kept. Records in ``exclude_ids`` are still being
        processed and are left alone.

        Returns:
            Ids of the records that were reset
        """
        return await asyncio.to_thread(self._reset_interrupted, list(exclude_ids))

    async def count_memories_by_status(self) -> Dict[str, int]:
        return await asyncio.to_thread(self._count_memories_by_status)

    async def insert_insight(self, insight: PersistedInsight) -> PersistedInsight:
        return await asyncio.to_thread(self._insert_insight, insight)

    async def update_insight(self, insight: PersistedInsight) -> None:
        await asyncio.to_thread(self._update_insight, insight)

    async def apply_merge(self, insight: PersistedInsight) -> None:
        """Write only the columns a dedup merge changes."""
        await asyncio.to_thread(self._apply_merge, insight)

    async def save_enrichment(self, insight: PersistedInsight) -> None:
        """Write only the columns enrichers add to."""
        await asyncio.to_thread(self._save_enrichment, insight)

    async def mark_superseded(
        self, insight_id: str, superseded_by: str, updated_at: datetime
    ) -> bool:
        """Point an insight at its successor unless it already has one.

        Returns:
            True when the row was updated
        """
        return await asyncio.to_thread(
            self._mark_superseded, insight_id, superseded_by, updated_at
        )

    async def get_insight(self, insight_id: str) -> Optional[PersistedInsight]:
        return await asyncio.to_thread(self._get_insight, insight_id)

    async def find_insight_by_signature(
        self, signature: str, since: datetime
    ) -> Optional[PersistedInsight]:
        return await asyncio.to_thread(self._find_insight_by_signature, signature, since)

    async def find_related_insights(
        self, insight: PersistedInsight, limit: int = 20
    ) -> List[PersistedInsight]:
        return await asyncio.to_thread(self._find_related_insights, insight, limit)

    async def find_supersedable_insights(
        self, insight: PersistedInsight, older_than: datetime, limit: int = 5
    ) -> List[PersistedInsight]:
        return await asyncio.to_thread(
            self._find_supersedable_insights, insight, older_than, limit
        )

    async def query_insights(
        self,
        *,
        insight_type: Optional[str] = None,
        category: Optional[str] = None,
        project_id: Optional[str] = None,
        min_confidence: Optional[float] = None,
        include_archived: bool = False,
        limit: int = 50,
    ) -> List[PersistedInsight]:
        return await asyncio.to_thread(
            self._query_insights,
            insight_type,
            category,
            project_id,
            min_confidence,
            include_archived,
            limit,
        )

    async def archive_insights(self, older_than: datetime) -> int:
        archived = await asyncio.to_thread(self._archive_insights, older_than)
        if archived:
            logger.info("Archived insights", extra={"archived": archived})
        return archived

    async def count_insights(self, include_archived: bool = True) -> int:
        return await asyncio.to_thread(self._count_insights, include_archived)

    def close(self) -> None:
        with self._lock:
            self._conn.close()
