"""
SQLite-backed local store for guest mode.

Provides durable, device-local key-value persistence for:
- Guest mastery, question history and best scores (one JSON list per collection)
- The offline write queue and sync status (raw keys)
- Per-identity migration markers

Database location: ~/.learnsync/state.db
Single caller, read-modify-write, last write wins.
"""

from __future__ import annotations

import json
import secrets
import time
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from learnsync.core.constants import (
    DEFAULT_HISTORY_LIMIT,
    HISTORY_COLLECTION,
    MASTERY_COLLECTION,
    SCORES_COLLECTION,
)
from learnsync.storage.base import Store, StoreScope, WriteResult, matches

# Key each collection is kept under in the kv table
COLLECTION_KEYS = {
    HISTORY_COLLECTION: "learning-question-history",
    SCORES_COLLECTION: "learning-scores",
    MASTERY_COLLECTION: "learning-mastery",
}


def new_record_id(prefix: str = "q") -> str:
    """Local id in the form ``q-<epoch ms>-<9 random chars>``."""
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(5)[:9]}"


def _sort_value(value: Any) -> tuple[int, Any]:
    # Missing values sort before everything else
    return (0, "") if value is None else (1, value)


class LocalStore(Store):
    """
    Durable key-value store on a local SQLite file.

    Collections are stored as JSON lists under fixed keys; raw keys are
    available to the offline queue and the migration procedure through
    read_value / write_value / delete_value.
    """

    scope = StoreScope.LOCAL

    DEFAULT_DB_PATH = Path.home() / ".learnsync" / "state.db"

    def __init__(
        self,
        db_path: Path | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        """
        Initialize the local store.

        Args:
            db_path: Custom database path (defaults to ~/.learnsync/state.db)
            history_limit: Newest history entries kept; older ones are evicted
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.history_limit = history_limit

        self.engine: Engine = create_engine(f"sqlite:///{self.db_path}", future=True)
        self._init_schema()

        logger.debug("LocalStore initialized at {}", self.db_path)

    def _init_schema(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    """
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TIMESTAMP
                    )
                    """
                )
            )

    def close(self) -> None:
        self.engine.dispose()

    # =========================================================================
    # Raw Key-Value Operations
    # =========================================================================

    def read_value(self, key: str, default: Any = None) -> Any:
        """Decoded value stored under ``key``, or ``default``."""
        with self.engine.connect() as conn:
            row = conn.execute(
                text("SELECT value FROM kv_store WHERE key = :key"), {"key": key}
            ).first()

        if row is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable local value for {}", key)
            return default

    def write_value(self, key: str, value: Any) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (:key, :value, :updated_at)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """
                ),
                {
                    "key": key,
                    "value": json.dumps(value),
                    "updated_at": datetime.now(UTC).isoformat(),
                },
            )

    def delete_value(self, key: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(text("DELETE FROM kv_store WHERE key = :key"), {"key": key})

    def has_value(self, key: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                text("SELECT 1 FROM kv_store WHERE key = :key"), {"key": key}
            ).first()
        return row is not None

    # =========================================================================
    # Collection Helpers
    # =========================================================================

    @staticmethod
    def collection_key(collection: str) -> str:
        return COLLECTION_KEYS.get(collection, f"collection:{collection}")

    def load_collection(self, collection: str) -> list[dict[str, Any]]:
        rows = self.read_value(self.collection_key(collection), default=[])
        return rows if isinstance(rows, list) else []

    def save_collection(self, collection: str, rows: list[dict[str, Any]]) -> None:
        if collection == HISTORY_COLLECTION and len(rows) > self.history_limit:
            rows = rows[-self.history_limit:]
        self.write_value(self.collection_key(collection), rows)

    def clear_collection(self, collection: str) -> None:
        self.delete_value(self.collection_key(collection))

    def has_data(self, collections: Sequence[str]) -> bool:
        """True if any of the collections holds at least one record."""
        return any(self.load_collection(c) for c in collections)

    # =========================================================================
    # Store Interface
    # =========================================================================

    async def insert(self, collection: str, records: Sequence[Mapping[str, Any]]) -> WriteResult:
        rows = self.load_collection(collection)
        created = []
        for record in records:
            row = dict(record)
            row.setdefault("id", new_record_id())
            created.append(row)
        self.save_collection(collection, rows + created)
        return WriteResult(records=created)

    async def select(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        rows = [r for r in self.load_collection(collection) if matches(r, filters)]
        if order_by:
            rows.sort(key=lambda r: _sort_value(r.get(order_by)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def upsert(
        self,
        collection: str,
        records: Sequence[Mapping[str, Any]],
        conflict_key: Sequence[str],
    ) -> WriteResult:
        rows = self.load_collection(collection)
        written = []
        for record in records:
            key = {name: record.get(name) for name in conflict_key}
            for index, existing in enumerate(rows):
                if matches(existing, key):
                    rows[index] = {**existing, **record}
                    written.append(rows[index])
                    break
            else:
                row = dict(record)
                row.setdefault("id", new_record_id("r"))
                rows.append(row)
                written.append(row)
        self.save_collection(collection, rows)
        return WriteResult(records=written)

    async def update(
        self, collection: str, match: Mapping[str, Any], values: Mapping[str, Any]
    ) -> WriteResult:
        rows = self.load_collection(collection)
        updated = []
        for index, row in enumerate(rows):
            if matches(row, match):
                rows[index] = {**row, **values}
                updated.append(rows[index])
        if updated:
            self.save_collection(collection, rows)
        return WriteResult(records=updated)

    async def remove(self, collection: str, ids: Sequence[str]) -> WriteResult:
        wanted = set(ids)
        rows = self.load_collection(collection)
        kept = [r for r in rows if r.get("id") not in wanted]
        removed = [r for r in rows if r.get("id") in wanted]
        if removed:
            self.save_collection(collection, kept)
        return WriteResult(records=removed)
