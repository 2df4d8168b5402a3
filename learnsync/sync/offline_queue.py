"""
Offline write queue for the remote store.

Writes that cannot reach the remote store are appended here (durably,
in the local store) and replayed by ``drain()``:

    Pending -> Succeeded (removed)
            -> Failed, retry_count < max_retries (kept for the next drain)
            -> Dropped, retry_count == max_retries (logged, counted, gone)

A drain replays a snapshot of the queue taken when it starts, strictly
in enqueue order and one item at a time, under the identity resolved at
drain time. Items enqueued while a drain runs wait for the next one.
Only one drain runs at a time per queue.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from loguru import logger

from learnsync.core.constants import (
    DEFAULT_IDENTITY_TIMEOUT_SECONDS,
    DEFAULT_MAX_RETRIES,
    QUEUE_KEY,
    SYNC_STATUS_KEY,
)
from learnsync.core.mastery import format_timestamp, parse_timestamp, utc_now
from learnsync.exceptions import IdentityTimeoutError
from learnsync.identity import Identity, IdentityResolver
from learnsync.storage.base import OperationType
from learnsync.storage.local_store import LocalStore, new_record_id
from learnsync.storage.remote_client import RemoteClient
from learnsync.storage.remote_store import RemoteStore

ProgressCallback = Callable[[int, int, str], None]
ConnectivityCheck = Callable[[], Awaitable[bool]]


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class QueueItem:
    """A deferred remote write."""

    id: str
    target_collection: str
    operation: OperationType
    payload: Any
    enqueued_at: datetime
    retry_count: int = 0
    conflict_key: list[str] | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "target_collection": self.target_collection,
            "operation": self.operation.value,
            "payload": self.payload,
            "enqueued_at": format_timestamp(self.enqueued_at),
            "retry_count": self.retry_count,
            "conflict_key": self.conflict_key,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueueItem:
        return cls(
            id=data["id"],
            target_collection=data["target_collection"],
            operation=OperationType(data["operation"]),
            payload=data.get("payload"),
            enqueued_at=parse_timestamp(data.get("enqueued_at")) or utc_now(),
            retry_count=int(data.get("retry_count") or 0),
            conflict_key=data.get("conflict_key"),
            last_error=data.get("last_error"),
        )


@dataclass
class SyncResult:
    """Counts from the last completed drain."""

    processed: int = 0
    failed: int = 0  # Every failed attempt, retained or dropped
    dropped: int = 0  # Failures that hit the retry ceiling
    total: int = 0


@dataclass
class SyncStatus:
    """Read-only projection for display; not authoritative."""

    last_sync_at: datetime | None = None
    pending_count: int = 0
    last_sync_result: SyncResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_sync_at": format_timestamp(self.last_sync_at),
            "pending_count": self.pending_count,
            "last_sync_result": vars(self.last_sync_result).copy() if self.last_sync_result else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SyncStatus:
        if not data:
            return cls()
        result = data.get("last_sync_result")
        return cls(
            last_sync_at=parse_timestamp(data.get("last_sync_at")),
            pending_count=int(data.get("pending_count") or 0),
            last_sync_result=SyncResult(**result) if result else None,
        )


class DrainSkipReason(str, Enum):
    """Why a drain did nothing."""

    NOT_CONFIGURED = "not_configured"
    OFFLINE = "offline"
    IDENTITY_TIMEOUT = "identity_timeout"
    IDENTITY_UNAVAILABLE = "identity_unavailable"
    NOT_AUTHENTICATED = "not_authenticated"
    ALREADY_RUNNING = "already_running"


@dataclass
class DrainResult:
    success: bool
    reason: DrainSkipReason | None = None
    processed: int = 0
    failed: int = 0
    dropped: int = 0
    total: int = 0

    @property
    def skipped(self) -> bool:
        return self.reason is not None

    @classmethod
    def skip(cls, reason: DrainSkipReason) -> DrainResult:
        return cls(success=False, reason=reason)


# =============================================================================
# Queue
# =============================================================================


@dataclass
class OfflineQueue:
    """
    Durable write-behind log persisted in the local store.

    Usage:
        queue = OfflineQueue(local_store)
        queue.enqueue("learning_mastery", OperationType.UPSERT, rows, ["subject", "topic"])
        result = await queue.drain(remote_client, identity_resolver)
    """

    local: LocalStore
    max_retries: int = DEFAULT_MAX_RETRIES
    identity_timeout_seconds: float = DEFAULT_IDENTITY_TIMEOUT_SECONDS

    _draining: bool = field(default=False, repr=False)

    # =========================================================================
    # Persistence
    # =========================================================================

    def items(self) -> list[QueueItem]:
        """Queued items in enqueue order."""
        items = []
        for raw in self.local.read_value(QUEUE_KEY, default=[]) or []:
            try:
                items.append(QueueItem.from_dict(raw))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable queue entry: {}", exc)
        return items

    def _save(self, items: list[QueueItem]) -> None:
        self.local.write_value(QUEUE_KEY, [item.to_dict() for item in items])

    def get_status(self) -> SyncStatus:
        return SyncStatus.from_dict(self.local.read_value(SYNC_STATUS_KEY))

    def _set_status(self, status: SyncStatus) -> None:
        self.local.write_value(SYNC_STATUS_KEY, status.to_dict())

    # =========================================================================
    # Queue Operations
    # =========================================================================

    def enqueue(
        self,
        target_collection: str,
        operation: OperationType,
        payload: Any,
        conflict_key: list[str] | None = None,
    ) -> str:
        """
        Append a write to the queue.

        Returns:
            Queue item id
        """
        item = QueueItem(
            id=new_record_id("op"),
            target_collection=target_collection,
            operation=operation,
            payload=payload,
            enqueued_at=utc_now(),
            conflict_key=conflict_key,
        )
        items = self.items()
        items.append(item)
        self._save(items)

        status = self.get_status()
        status.pending_count = len(items)
        self._set_status(status)

        logger.info(
            "Queued {} on {} (pending: {})", operation.value, target_collection, len(items)
        )
        return item.id

    def size(self) -> int:
        return len(self.items())

    def has_pending(self) -> bool:
        return self.size() > 0

    def clear(self) -> None:
        """Drop all pending writes and reset the sync status."""
        self._save([])
        self._set_status(SyncStatus())

    @property
    def is_draining(self) -> bool:
        return self._draining

    # =========================================================================
    # Drain
    # =========================================================================

    async def drain(
        self,
        remote_client: RemoteClient | None,
        identity_resolver: IdentityResolver,
        is_online: ConnectivityCheck | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> DrainResult:
        """
        Replay queued writes against the remote store.

        Args:
            remote_client: Remote API client (None = remote not configured)
            identity_resolver: Source of the identity every item is written under
            is_online: Connectivity check (defaults to the client's health check)
            on_progress: Called with (current, total, collection) before each item

        Returns:
            DrainResult; ``reason`` is set when preconditions failed and the
            queue was left untouched
        """
        if self._draining:
            logger.info("Drain already in progress, skipping")
            return DrainResult.skip(DrainSkipReason.ALREADY_RUNNING)

        self._draining = True
        try:
            return await self._drain(remote_client, identity_resolver, is_online, on_progress)
        finally:
            self._draining = False

    async def _resolve_identity(self, identity_resolver: IdentityResolver) -> Identity | None:
        try:
            return await asyncio.wait_for(
                identity_resolver.resolve(), timeout=self.identity_timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            raise IdentityTimeoutError(
                f"Identity resolution timed out after {self.identity_timeout_seconds}s"
            ) from exc

    async def _drain(
        self,
        remote_client: RemoteClient | None,
        identity_resolver: IdentityResolver,
        is_online: ConnectivityCheck | None,
        on_progress: ProgressCallback | None,
    ) -> DrainResult:
        if remote_client is None:
            logger.info("Remote store not configured, skipping queue processing")
            return DrainResult.skip(DrainSkipReason.NOT_CONFIGURED)

        check = is_online or remote_client.health_check
        try:
            online = await check()
        except Exception as exc:
            logger.warning("Connectivity check failed: {}", exc)
            online = False
        if not online:
            logger.info("Remote store unreachable, skipping queue processing")
            return DrainResult.skip(DrainSkipReason.OFFLINE)

        try:
            identity = await self._resolve_identity(identity_resolver)
        except IdentityTimeoutError as exc:
            logger.error("{}, skipping queue processing", exc)
            return DrainResult.skip(DrainSkipReason.IDENTITY_TIMEOUT)
        except Exception as exc:
            logger.error("Identity resolution failed, skipping queue processing: {}", exc)
            return DrainResult.skip(DrainSkipReason.IDENTITY_UNAVAILABLE)

        if identity is None or not identity.is_authenticated:
            logger.info("User not authenticated, skipping queue processing")
            return DrainResult.skip(DrainSkipReason.NOT_AUTHENTICATED)

        snapshot = self.items()
        if not snapshot:
            logger.debug("Queue is empty, nothing to sync")
            return DrainResult(success=True)

        logger.info("Processing {} queued operations...", len(snapshot))
        store = RemoteStore(remote_client, identity.id, queue=None, queue_on_failure=False)

        processed = failed = dropped = 0
        retained: list[QueueItem] = []

        for index, item in enumerate(snapshot, start=1):
            if on_progress:
                on_progress(index, len(snapshot), item.target_collection)

            try:
                await store.execute(
                    item.operation, item.target_collection, item.payload, item.conflict_key
                )
                processed += 1
            except Exception as exc:
                # Any error counts as a failed attempt
                failed += 1
                item.retry_count += 1
                item.last_error = str(exc)

                if item.retry_count < self.max_retries:
                    logger.warning(
                        "Queue item {} failed (attempt {}/{}), retained",
                        item.id,
                        item.retry_count,
                        self.max_retries,
                    )
                    retained.append(item)
                else:
                    dropped += 1
                    logger.error(
                        "Queue item {} on {} dropped after {} failed attempts: {}",
                        item.id,
                        item.target_collection,
                        item.retry_count,
                        exc,
                    )

        # Keep anything enqueued while this drain was running
        snapshot_ids = {item.id for item in snapshot}
        arrived = [item for item in self.items() if item.id not in snapshot_ids]
        remaining = retained + arrived
        self._save(remaining)

        self._set_status(
            SyncStatus(
                last_sync_at=utc_now(),
                pending_count=len(remaining),
                last_sync_result=SyncResult(
                    processed=processed, failed=failed, dropped=dropped, total=len(snapshot)
                ),
            )
        )

        logger.info(
            "Queue processing complete: {} succeeded, {} failed, {} dropped",
            processed,
            failed,
            dropped,
        )
        return DrainResult(
            success=True, processed=processed, failed=failed, dropped=dropped, total=len(snapshot)
        )
