"""
Learning progress service.

Single entry point for the view layer. Every public method:
- resolves the identity once and picks the store for it (guest -> local,
  authenticated -> remote when configured)
- validates its input before touching a store
- returns a result object instead of raising
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from loguru import logger
from pydantic import ValidationError

from learnsync.core.constants import (
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_MIGRATION_BATCH_SIZE,
    HISTORY_COLLECTION,
    MASTERY_COLLECTION,
    SCORES_COLLECTION,
    topic_key,
)
from learnsync.core.difficulty import DifficultyLevel
from learnsync.core.mastery import MasteryState, OutcomeRecord, format_timestamp, utc_now
from learnsync.core.recommendation import (
    Recommendation,
    apply_outcome,
    session_start_recommendation,
)
from learnsync.core.stats import ProgressStats, compute_progress_stats
from learnsync.exceptions import LearnSyncError, OutcomeValidationError, PermanentPersistenceError
from learnsync.identity import Identity, IdentityResolver
from learnsync.models import HistoryFilters, QuestionHistoryEntry
from learnsync.storage.base import Store
from learnsync.storage.local_store import LocalStore
from learnsync.storage.remote_client import RemoteClient
from learnsync.storage.remote_store import RemoteStore
from learnsync.sync.migration import GuestDataMigration, MigrationResult
from learnsync.sync.offline_queue import (
    ConnectivityCheck,
    DrainResult,
    DrainSkipReason,
    OfflineQueue,
    ProgressCallback,
    SyncStatus,
)

T = TypeVar("T")


# =============================================================================
# Results
# =============================================================================


@dataclass
class OperationResult(Generic[T]):
    success: bool
    data: T | None = None
    error: str | None = None
    queued: bool = False


@dataclass
class MasteryUpdateResult:
    success: bool
    state: MasteryState | None = None
    recommendation: Recommendation | None = None
    queued: bool = False
    error: str | None = None


@dataclass
class DifficultyAdvice:
    """Difficulty to start practice at, and why."""

    difficulty: DifficultyLevel
    is_recommendation: bool
    reason: str
    mastery: MasteryState | None = None


@dataclass
class SessionStartResult:
    success: bool
    recommendation: Recommendation | None = None
    mastery: MasteryState | None = None
    error: str | None = None


@dataclass
class ScoreSaveResult:
    success: bool
    updated: bool = False
    error: str | None = None


@dataclass
class ScoreSummary:
    best: int
    total: int
    percentage: int
    last_attempt: str | None = None


# =============================================================================
# Service
# =============================================================================


def _topic(subject: str, topic: str) -> dict[str, str]:
    return {"subject": subject, "topic": topic}


@dataclass
class LearningProgressService:
    """
    Façade over the mastery engine and the dual-mode store.

    Usage:
        service = LearningProgressService(local=LocalStore(), identity_resolver=resolver)
        result = await service.update_mastery("math", "fractions", "medium", 1.0)
        if result.recommendation:
            show(result.recommendation.message)
    """

    local: LocalStore
    identity_resolver: IdentityResolver
    remote_client: RemoteClient | None = None
    queue: OfflineQueue | None = None
    history_limit: int = DEFAULT_HISTORY_LIMIT
    migration_batch_size: int = DEFAULT_MIGRATION_BATCH_SIZE

    _migration: GuestDataMigration | None = field(default=None, repr=False)

    # =========================================================================
    # Store Selection
    # =========================================================================

    def store_for(self, identity: Identity | None) -> Store:
        """Local for guests or when no remote is configured, remote otherwise."""
        if identity is None or identity.is_guest or self.remote_client is None:
            return self.local
        return RemoteStore(self.remote_client, identity.id, queue=self.queue)

    async def _store(self) -> Store:
        return self.store_for(await self.identity_resolver.resolve())

    async def _load_mastery(self, store: Store, subject: str, topic: str) -> MasteryState:
        row = await store.get(MASTERY_COLLECTION, _topic(subject, topic))
        if not row:
            return MasteryState.default(subject, topic)
        try:
            return MasteryState.from_record(row)
        except (KeyError, TypeError, ValueError) as exc:
            raise PermanentPersistenceError(
                f"Unreadable mastery record for {topic_key(subject, topic)}: {exc}"
            ) from exc

    # =========================================================================
    # Mastery
    # =========================================================================

    async def get_mastery(self, subject: str, topic: str) -> OperationResult[MasteryState]:
        """Current mastery for a topic; a default (is_new) state if none exists."""
        try:
            store = await self._store()
            return OperationResult(success=True, data=await self._load_mastery(store, subject, topic))
        except LearnSyncError as exc:
            logger.error("Error fetching mastery for {}: {}", topic_key(subject, topic), exc)
            return OperationResult(success=False, error=str(exc))

    async def update_mastery(
        self,
        subject: str,
        topic: str,
        difficulty: str | DifficultyLevel,
        score: float,
    ) -> MasteryUpdateResult:
        """
        Record an answered question and run the recommendation policy.

        Args:
            subject: Subject name
            topic: Topic name
            difficulty: Difficulty the question was answered at
            score: Outcome score in [0, 1]

        Returns:
            MasteryUpdateResult with the new state and at most one recommendation
        """
        try:
            outcome = OutcomeRecord.create(subject, topic, difficulty, score)
        except OutcomeValidationError as exc:
            return MasteryUpdateResult(success=False, error=str(exc))

        try:
            store = await self._store()
            current = await self._load_mastery(store, subject, topic)
            updated, recommendation = apply_outcome(current, outcome)
            write = await store.put(MASTERY_COLLECTION, _topic(subject, topic), updated.to_record())
        except LearnSyncError as exc:
            logger.error("Error updating mastery for {}: {}", topic_key(subject, topic), exc)
            return MasteryUpdateResult(success=False, error=str(exc))

        if recommendation:
            logger.debug("{}: {}", topic_key(subject, topic), recommendation.type.value)
        return MasteryUpdateResult(
            success=True, state=updated, recommendation=recommendation, queued=write.queued
        )

    async def get_recommended_difficulty(self, subject: str, topic: str) -> DifficultyAdvice:
        """Difficulty to start practice at (used when a topic is opened)."""
        result = await self.get_mastery(subject, topic)

        if not result.success:
            return DifficultyAdvice(
                difficulty=DifficultyLevel.MEDIUM,
                is_recommendation=False,
                reason="Error fetching mastery - defaulting to medium",
            )

        mastery = result.data
        if mastery.is_new:
            return DifficultyAdvice(
                difficulty=DifficultyLevel.MEDIUM,
                is_recommendation=False,
                reason="New topic - starting at medium",
            )

        recommended = mastery.recommended_difficulty
        differs = recommended != mastery.current_difficulty
        reason = (
            f"Based on {int(mastery.rolling_accuracy * 100 + 0.5)}% recent accuracy"
            if differs
            else "Continuing at current level"
        )
        return DifficultyAdvice(
            difficulty=recommended, is_recommendation=differs, reason=reason, mastery=mastery
        )

    async def reset_session_counters(self, subject: str, topic: str) -> OperationResult[None]:
        """Explicit session boundary: zero the difficulty-change counter."""
        try:
            store = await self._store()
            write = await store.update(
                MASTERY_COLLECTION, _topic(subject, topic), {"difficulty_changes_session": 0}
            )
        except LearnSyncError as exc:
            logger.error("Error resetting session counters: {}", exc)
            return OperationResult(success=False, error=str(exc))
        return OperationResult(success=True, queued=write.queued)

    async def start_session(
        self, subject: str, topic: str, difficulty: str | DifficultyLevel
    ) -> SessionStartResult:
        """
        Begin a practice session at ``difficulty``.

        Resets the session counter and returns a session-start
        recommendation when the stored recommendation differs.
        """
        try:
            chosen = DifficultyLevel.parse(difficulty)
        except ValueError as exc:
            return SessionStartResult(success=False, error=str(exc))

        try:
            store = await self._store()
            mastery = await self._load_mastery(store, subject, topic)
            recommendation = session_start_recommendation(mastery, chosen)
            if not mastery.is_new:
                await store.update(
                    MASTERY_COLLECTION, _topic(subject, topic), {"difficulty_changes_session": 0}
                )
                mastery = mastery.with_session_reset()
        except LearnSyncError as exc:
            logger.error("Error starting session for {}: {}", topic_key(subject, topic), exc)
            return SessionStartResult(success=False, error=str(exc))

        return SessionStartResult(success=True, recommendation=recommendation, mastery=mastery)

    # =========================================================================
    # Question History
    # =========================================================================

    async def save_question_to_history(
        self, entry: QuestionHistoryEntry | Mapping[str, Any]
    ) -> OperationResult[dict[str, Any]]:
        """Append one answered question to history."""
        try:
            if not isinstance(entry, QuestionHistoryEntry):
                entry = QuestionHistoryEntry.model_validate(dict(entry))
        except ValidationError as exc:
            return OperationResult(success=False, error=str(exc))

        record = {**entry.to_record(), "created_at": format_timestamp(utc_now())}
        try:
            store = await self._store()
            write = await store.insert(HISTORY_COLLECTION, [record])
        except LearnSyncError as exc:
            logger.error("Error saving question to history: {}", exc)
            return OperationResult(success=False, error=str(exc))

        return OperationResult(success=True, data=write.first or record, queued=write.queued)

    async def get_question_history(
        self, filters: HistoryFilters | Mapping[str, Any] | None = None
    ) -> OperationResult[list[dict[str, Any]]]:
        """History entries, newest first."""
        try:
            if not isinstance(filters, HistoryFilters):
                filters = HistoryFilters.model_validate(dict(filters or {}))
        except ValidationError as exc:
            return OperationResult(success=False, data=[], error=str(exc))

        try:
            store = await self._store()
            rows = await store.select(
                HISTORY_COLLECTION,
                filters=filters.equality_filters(),
                order_by="created_at",
                descending=True,
                limit=filters.limit,
            )
        except LearnSyncError as exc:
            logger.error("Error fetching question history: {}", exc)
            return OperationResult(success=False, data=[], error=str(exc))

        return OperationResult(success=True, data=rows)

    # =========================================================================
    # Scores
    # =========================================================================

    async def save_best_score(
        self, subject: str, topic: str, score: float, total: int
    ) -> ScoreSaveResult:
        """Keep the best percentage per topic; equal or worse results are ignored."""
        if total <= 0:
            return ScoreSaveResult(success=False, error=f"Total must be positive, got {total}")
        if score < 0:
            return ScoreSaveResult(success=False, error=f"Score must not be negative, got {score}")

        percentage = int(score / total * 100 + 0.5)
        key = _topic(subject, topic)
        try:
            store = await self._store()
            existing = await store.get(SCORES_COLLECTION, key)
            if existing and percentage <= (existing.get("best_percentage") or 0):
                return ScoreSaveResult(success=True, updated=False)

            await store.put(
                SCORES_COLLECTION,
                key,
                {
                    "best_score": int(score + 0.5),
                    "best_total": total,
                    "best_percentage": percentage,
                    "last_attempt": format_timestamp(utc_now()),
                },
            )
        except LearnSyncError as exc:
            logger.error("Error saving best score: {}", exc)
            return ScoreSaveResult(success=False, error=str(exc))

        return ScoreSaveResult(success=True, updated=True)

    async def get_all_scores(self) -> OperationResult[dict[str, ScoreSummary]]:
        """Best scores keyed by ``subject-topic``."""
        try:
            store = await self._store()
            rows = await store.select(SCORES_COLLECTION)
        except LearnSyncError as exc:
            logger.error("Error fetching all scores: {}", exc)
            return OperationResult(success=False, data={}, error=str(exc))

        try:
            scores = {
                topic_key(row["subject"], row["topic"]): ScoreSummary(
                    best=int(row.get("best_score") or 0),
                    total=int(row.get("best_total") or 0),
                    percentage=int(row.get("best_percentage") or 0),
                    last_attempt=row.get("last_attempt"),
                )
                for row in rows
            }
        except (KeyError, TypeError, ValueError) as exc:
            logger.error("Unreadable score record: {}", exc)
            return OperationResult(success=False, data={}, error=f"Unreadable score record: {exc}")
        return OperationResult(success=True, data=scores)

    # =========================================================================
    # Progress
    # =========================================================================

    async def get_progress_stats(self) -> OperationResult[ProgressStats]:
        """Dashboard statistics over the most recent history."""
        history = await self.get_question_history(HistoryFilters(limit=self.history_limit))
        if not history.success:
            return OperationResult(success=False, error=history.error)
        return OperationResult(success=True, data=compute_progress_stats(history.data or []))

    # =========================================================================
    # Sync & Migration
    # =========================================================================

    @property
    def migration(self) -> GuestDataMigration | None:
        if self._migration is None and self.remote_client is not None:
            self._migration = GuestDataMigration(
                self.local, self.remote_client, batch_size=self.migration_batch_size
            )
        return self._migration

    async def migrate_guest_data(self) -> MigrationResult:
        """Move guest data into the signed-in user's remote scope (once)."""
        if self.migration is None:
            return MigrationResult(success=False, error="Remote store not configured")
        try:
            identity = await self.identity_resolver.resolve()
        except LearnSyncError as exc:
            return MigrationResult(success=False, error=str(exc))
        return await self.migration.run(identity)

    async def drain_offline_queue(
        self,
        is_online: ConnectivityCheck | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> DrainResult:
        """Replay deferred remote writes (call on reconnect or app start)."""
        if self.queue is None:
            return DrainResult.skip(DrainSkipReason.NOT_CONFIGURED)
        return await self.queue.drain(
            self.remote_client, self.identity_resolver, is_online=is_online, on_progress=on_progress
        )

    def get_sync_status(self) -> SyncStatus:
        if self.queue is None:
            return SyncStatus()
        return self.queue.get_status()
