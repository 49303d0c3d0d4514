"""Key/value runtime settings with a lazily refreshed TTL cache.

Values are stored as JSON text so numbers, booleans and objects round-trip
with their types. Reads never refresh proactively: the first read after the
TTL expires reloads the whole table in one query.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS system_config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    category TEXT NOT NULL DEFAULT 'general',
    description TEXT,
    updated_by TEXT NOT NULL DEFAULT 'system',
    updated_at TEXT NOT NULL
);
"""

DEFAULT_TTL_SECONDS = 300.0

_TRUTHY = {"true", "1", "yes", "on", "enabled"}


def _decode(raw: str) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


class ConfigStore:
    """SQLite-backed settings table with TTL-cached reads."""

    def __init__(
        self,
        path: Path,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._path = Path(path)
        if str(path) != ":memory:":
            self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._path), check_same_thread=False)
        self._conn.execute(SCHEMA)
        self._lock = threading.Lock()
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: Dict[str, Any] = {}
        self._last_refresh: Optional[float] = None

    def refresh(self) -> None:
        with self._lock:
            rows = self._conn.execute("SELECT key, value FROM system_config").fetchall()
            self._cache = {key: _decode(value) for key, value in rows}
            self._last_refresh = self._clock()
        logger.debug("Configuration cache refreshed", extra={"entries": len(rows)})

    def _ensure_fresh(self) -> None:
        if self._last_refresh is None or self._clock() - self._last_refresh > self._ttl:
            self.refresh()

    def get(self, key: str, default: Any = None) -> Any:
        self._ensure_fresh()
        return self._cache.get(key, default)

    def get_number(self, key: str, default: float = 0) -> float:
        value = self.get(key, default)
        if isinstance(value, bool):
            return float(value)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(
                "Configuration value is not numeric, using default",
                extra={"config_key": key},
            )
            return default

    def is_feature_enabled(self, key: str) -> bool:
        value = self.get(key, False)
        if isinstance(value, str):
            return value.strip().lower() in _TRUTHY
        return bool(value)

    def set(
        self,
        key: str,
        value: Any,
        *,
        category: str = "general",
        description: Optional[str] = None,
        updated_by: str = "system",
    ) -> None:
        payload = json.dumps(value)
        now = datetime.utcnow().isoformat()
        with self._lock:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO system_config(key, value, category, description, updated_by, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        category = excluded.category,
                        description = COALESCE(excluded.description, system_config.description),
                        updated_by = excluded.updated_by,
                        updated_at = excluded.updated_at
                    """,
                    (key, payload, category, description, updated_by, now),
                )
            self._cache[key] = value
        logger.info(
            "Configuration updated",
            extra={"config_key": key, "updated_by": updated_by},
        )

    def get_by_category(self, category: str) -> Dict[str, Dict[str, Any]]:
        """Read one category straight from the table, bypassing the cache."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT key, value, description FROM system_config WHERE category = ? ORDER BY key",
                (category,),
            ).fetchall()
        return {
            key: {"value": _decode(value), "description": description}
            for key, value, description in rows
        }

    def close(self) -> None:
        with self._lock:
            self._conn.close()
