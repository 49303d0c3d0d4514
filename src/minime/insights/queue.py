"""Persistent backlog of memories awaiting the batch driver."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .models import ProcessingQueueItem, QueueItemStatus, TaskType


SCHEMA = """
CREATE TABLE IF NOT EXISTS processing_queue (
    id TEXT PRIMARY KEY,
    memory_id TEXT NOT NULL,
    task_type TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    attempts INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class ProcessingQueue:
    """SQLite-backed persistent queue for memory processing tasks."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        if str(path) != ":memory:":
            self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(SCHEMA)
        self._lock = threading.Lock()

    def enqueue(
        self,
        memory_id: str,
        task_type: TaskType = TaskType.PATTERN_DETECTION,
    ) -> ProcessingQueueItem:
        """Queue a memory; an open item for the same memory and task is reused."""
        now = datetime.utcnow()
        with self._lock:
            with self._conn:
                row = self._conn.execute(
                    """
                    SELECT id, attempts, created_at FROM processing_queue
                    WHERE memory_id = ? AND task_type = ? AND status IN ('pending', 'retry', 'processing')
                    """,
                    (memory_id, task_type.value),
                ).fetchone()
                if row:
                    return ProcessingQueueItem(
                        id=row[0],
                        memory_id=memory_id,
                        task_type=task_type,
                        attempts=row[1],
                        created_at=datetime.fromisoformat(row[2]),
                        updated_at=now,
                    )
                item = ProcessingQueueItem(
                    id=str(uuid.uuid4()),
                    memory_id=memory_id,
                    task_type=task_type,
                    created_at=now,
                    updated_at=now,
                )
                self._conn.execute(
                    """
                    INSERT INTO processing_queue(id, memory_id, task_type, status, attempts, created_at, updated_at)
                    VALUES (?, ?, ?, 'pending', 0, ?, ?)
                    """,
                    (item.id, memory_id, task_type.value, now.isoformat(timespec="microseconds"), now.isoformat(timespec="microseconds")),
                )
        return item

    def fetch_pending(
        self, limit: int = 10, exclude_ids: Iterable[str] = ()
    ) -> List[ProcessingQueueItem]:
        excluded = list(exclude_ids)
        exclusion = ""
        if excluded:
            exclusion = f"AND id NOT IN ({', '.join('?' for _ in excluded)})"
        with self._lock:
            rows = self._conn.execute(
                f"""
                SELECT id, memory_id, task_type, status, attempts, last_error, created_at, updated_at
                FROM processing_queue
                WHERE status IN ('pending', 'retry') {exclusion}
                ORDER BY created_at, rowid
                LIMIT ?
                """,
                (*excluded, limit),
            ).fetchall()
        return [
            ProcessingQueueItem(
                id=item_id,
                memory_id=memory_id,
                task_type=TaskType(task_type),
                status=QueueItemStatus(status),
                attempts=attempts,
                last_error=last_error,
                created_at=datetime.fromisoformat(created_at),
                updated_at=datetime.fromisoformat(updated_at),
            )
            for item_id, memory_id, task_type, status, attempts, last_error, created_at, updated_at in rows
        ]

    def mark_processing(self, item_id: str) -> None:
        with self._lock:
            with self._conn:
                self._conn.execute(
                    "UPDATE processing_queue SET status = 'processing', attempts = attempts + 1, updated_at = ? WHERE id = ?",
                    (datetime.utcnow().isoformat(timespec="microseconds"), item_id),
                )

    def mark_completed(self, item_id: str) -> None:
        self._set_status(item_id, QueueItemStatus.COMPLETED)

    def mark_failed(self, item_id: str, error: Optional[str] = None) -> None:
        self._set_status(item_id, QueueItemStatus.FAILED, error)

    def mark_retry(self, item_id: str, error: Optional[str] = None) -> None:
        self._set_status(item_id, QueueItemStatus.RETRY, error)

    def cancel(self, item_id: str) -> None:
        self._set_status(item_id, QueueItemStatus.CANCELLED)

    def _set_status(
        self, item_id: str, status: QueueItemStatus, error: Optional[str] = None
    ) -> None:
        with self._lock:
            with self._conn:
                self._conn.execute(
                    "UPDATE processing_queue SET status = ?, last_error = COALESCE(?, last_error), updated_at = ? WHERE id = ?",
                    (status.value, error, datetime.utcnow().isoformat(timespec="microseconds"), item_id),
                )

    def reset_interrupted(self) -> int:
        """Move items left in ``processing`` by an interrupted drain to ``retry``."""
        with self._lock:
            with self._conn:
                cursor = self._conn.execute(
                    "UPDATE processing_queue SET status = 'retry', updated_at = ? WHERE status = 'processing'",
                    (datetime.utcnow().isoformat(timespec="microseconds"),),
                )
        return cursor.rowcount

    def counts(self) -> Dict[str, int]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT status, COUNT(*) FROM processing_queue GROUP BY status"
            ).fetchall()
        result = {status.value: 0 for status in QueueItemStatus}
        result.update({status: int(count) for status, count in rows})
        return result

    def pending_count(self) -> int:
        counts = self.counts()
        return counts[QueueItemStatus.PENDING.value] + counts[QueueItemStatus.RETRY.value]

    # Async helpers for callers running on the event loop.

    async def aenqueue(
        self, memory_id: str, task_type: TaskType = TaskType.PATTERN_DETECTION
    ) -> ProcessingQueueItem:
        return await asyncio.to_thread(self.enqueue, memory_id, task_type)

    async def afetch_pending(
        self, limit: int = 10, exclude_ids: Iterable[str] = ()
    ) -> List[ProcessingQueueItem]:
        return await asyncio.to_thread(self.fetch_pending, limit, list(exclude_ids))

    def close(self) -> None:
        with self._lock:
            self._conn.close()
