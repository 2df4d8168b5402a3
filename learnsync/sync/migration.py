"""
One-time migration of guest (local) learning data into the remote store.

Runs when a guest signs in. A per-user marker in the local store makes it
idempotent: once set, later runs return ``already_migrated``.

Order of work:
1. history   - inserted in batches (append-only)
2. scores    - upserted in batches on (user_id, subject, topic)
3. mastery   - upserted in batches, session counter reset to 0
4. set the marker
5. clear the local learning collections

Any failed batch stops the run and reports how many records were
committed before it. A crash between step 3 and step 4 means the next run
writes everything again; upserts absorb that, history rows are duplicated.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from learnsync.core.constants import (
    DEFAULT_MIGRATION_BATCH_SIZE,
    HISTORY_COLLECTION,
    LEARNING_COLLECTIONS,
    MASTERY_COLLECTION,
    MIGRATION_MARKER_PREFIX,
    SCORES_COLLECTION,
    TOPIC_KEY,
)
from learnsync.core.mastery import format_timestamp, utc_now
from learnsync.exceptions import PersistenceError
from learnsync.identity import Identity
from learnsync.storage.local_store import LocalStore
from learnsync.storage.remote_client import RemoteClient
from learnsync.storage.remote_store import RemoteStore


@dataclass
class MigrationResult:
    success: bool
    already_migrated: bool = False
    no_data_to_migrate: bool = False
    migrated: dict[str, int] = field(
        default_factory=lambda: {"history": 0, "scores": 0, "mastery": 0}
    )
    error: str | None = None

    @property
    def total(self) -> int:
        return sum(self.migrated.values())


def _batches(rows: Sequence[dict[str, Any]], size: int) -> list[Sequence[dict[str, Any]]]:
    return [rows[i:i + size] for i in range(0, len(rows), size)]


def _history_row(entry: dict[str, Any]) -> dict[str, Any]:
    # Local ids are device-generated; the remote assigns its own
    row = {k: v for k, v in entry.items() if k not in ("id", "user_id")}
    row.setdefault("created_at", entry.get("timestamp"))
    row.pop("timestamp", None)
    return row


def _mastery_row(entry: dict[str, Any]) -> dict[str, Any]:
    row = {k: v for k, v in entry.items() if k not in ("id", "user_id")}
    row["difficulty_changes_session"] = 0
    return row


def _score_row(entry: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in entry.items() if k not in ("id", "user_id")}


class GuestDataMigration:
    """Moves guest learning data into a signed-in user's remote scope."""

    def __init__(
        self,
        local: LocalStore,
        remote_client: RemoteClient,
        batch_size: int = DEFAULT_MIGRATION_BATCH_SIZE,
    ):
        self.local = local
        self.remote_client = remote_client
        self.batch_size = batch_size

    @staticmethod
    def marker_key(user_id: str) -> str:
        return f"{MIGRATION_MARKER_PREFIX}{user_id}"

    def is_migrated(self, user_id: str) -> bool:
        return self.local.has_value(self.marker_key(user_id))

    def reset_marker(self, user_id: str) -> None:
        """Forget that this user was migrated (re-migration, tests)."""
        self.local.delete_value(self.marker_key(user_id))

    def has_local_data(self) -> bool:
        return self.local.has_data(LEARNING_COLLECTIONS)

    def _mark(self, user_id: str) -> None:
        self.local.write_value(self.marker_key(user_id), format_timestamp(utc_now()))

    async def run(self, identity: Identity | None) -> MigrationResult:
        """
        Migrate local learning data for ``identity``.

        Args:
            identity: The newly authenticated identity

        Returns:
            MigrationResult with per-family counts committed
        """
        if identity is None or not identity.is_authenticated:
            return MigrationResult(success=False, error="No authenticated user")

        if self.is_migrated(identity.id):
            logger.debug("Guest data already migrated for {}", identity.id)
            return MigrationResult(success=True, already_migrated=True)

        if not self.has_local_data():
            self._mark(identity.id)
            return MigrationResult(success=True, no_data_to_migrate=True)

        store = RemoteStore(self.remote_client, identity.id, queue=None, queue_on_failure=False)
        result = MigrationResult(success=False)

        try:
            history = [
                _history_row(e)
                for e in await self.local.select(HISTORY_COLLECTION, order_by="created_at", descending=False)
            ]
            for batch in _batches(history, self.batch_size):
                await store.insert(HISTORY_COLLECTION, batch)
                result.migrated["history"] += len(batch)

            scores = [_score_row(e) for e in self.local.load_collection(SCORES_COLLECTION)]
            for batch in _batches(scores, self.batch_size):
                await store.upsert(SCORES_COLLECTION, batch, TOPIC_KEY)
                result.migrated["scores"] += len(batch)

            mastery = [_mastery_row(e) for e in self.local.load_collection(MASTERY_COLLECTION)]
            for batch in _batches(mastery, self.batch_size):
                await store.upsert(MASTERY_COLLECTION, batch, TOPIC_KEY)
                result.migrated["mastery"] += len(batch)

        except PersistenceError as exc:
            logger.error(
                "Guest migration for {} failed after {} records: {}",
                identity.id,
                result.total,
                exc,
            )
            result.error = str(exc)
            return result

        self._mark(identity.id)
        for collection in LEARNING_COLLECTIONS:
            self.local.clear_collection(collection)

        result.success = True
        logger.info(
            "Migrated guest data for {}: history={}, scores={}, mastery={}",
            identity.id,
            result.migrated["history"],
            result.migrated["scores"],
            result.migrated["mastery"],
        )
        return result
