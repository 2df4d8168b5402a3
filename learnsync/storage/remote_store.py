"""
Remote (authoritative) store bound to one authenticated user.

Every record written gets the bound ``user_id``; every read and targeted
write is filtered by it. Writes are attempted immediately. When a write
fails transiently and an offline queue is attached, it is handed to the
queue instead of failing the caller, and the result is flagged
``queued``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from loguru import logger

from learnsync.exceptions import TransientPersistenceError
from learnsync.storage.base import OperationType, Store, StoreScope, WriteResult
from learnsync.storage.remote_client import RemoteClient

if TYPE_CHECKING:
    from learnsync.sync.offline_queue import OfflineQueue


def strip_user(rows: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Drop user ownership so a row can be re-tagged later."""
    return [{k: v for k, v in row.items() if k != "user_id"} for row in rows]


class RemoteStore(Store):
    """Store backed by the remote tabular API for a single user."""

    scope = StoreScope.REMOTE

    def __init__(
        self,
        client: RemoteClient,
        user_id: str,
        queue: OfflineQueue | None = None,
        queue_on_failure: bool = True,
    ):
        """
        Args:
            client: Remote API client
            user_id: Authenticated user every record belongs to
            queue: Offline queue for deferred writes
            queue_on_failure: Defer transient write failures instead of raising
        """
        self.client = client
        self.user_id = user_id
        self.queue = queue
        self.queue_on_failure = queue_on_failure

    def _tag(self, rows: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        return [{**row, "user_id": self.user_id} for row in rows]

    def _scoped(self, filters: Mapping[str, Any] | None) -> dict[str, Any]:
        return {**(filters or {}), "user_id": self.user_id}

    @staticmethod
    def _conflict(conflict_key: Sequence[str]) -> list[str]:
        key = list(conflict_key)
        return key if "user_id" in key else ["user_id", *key]

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute(
        self,
        operation: OperationType,
        collection: str,
        payload: Any,
        conflict_key: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Run one write under this store's user, without queueing.

        Payload shapes:
            INSERT / UPSERT: list of rows
            UPDATE: {"match": {...}, "values": {...}}
            DELETE: {"ids": [...]}

        Raises:
            PersistenceError: On any remote failure
        """
        if operation is OperationType.INSERT:
            return await self.client.insert(collection, self._tag(payload))
        if operation is OperationType.UPSERT:
            return await self.client.upsert(
                collection, self._tag(payload), self._conflict(conflict_key or ["id"])
            )
        if operation is OperationType.UPDATE:
            return await self.client.update(
                collection, self._scoped(payload["match"]), strip_user([payload["values"]])[0]
            )
        if operation is OperationType.DELETE:
            return await self.client.delete(collection, payload["ids"], match={"user_id": self.user_id})
        raise ValueError(f"Unknown operation type: {operation}")

    async def _write(
        self,
        operation: OperationType,
        collection: str,
        payload: Any,
        conflict_key: Sequence[str] | None = None,
    ) -> WriteResult:
        try:
            rows = await self.execute(operation, collection, payload, conflict_key)
            return WriteResult(records=rows)
        except TransientPersistenceError as e:
            if not (self.queue_on_failure and self.queue is not None):
                raise
            self.queue.enqueue(
                collection,
                operation,
                payload,
                conflict_key=list(conflict_key) if conflict_key else None,
            )
            logger.warning("Remote {} on {} deferred to offline queue: {}", operation.value, collection, e)
            pending = self._tag(payload) if isinstance(payload, list) else []
            return WriteResult(records=pending, queued=True)

    # =========================================================================
    # Store Interface
    # =========================================================================

    async def select(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        return await self.client.select(
            collection,
            filters=self._scoped(filters),
            order_by=order_by,
            descending=descending,
            limit=limit,
        )

    async def insert(self, collection: str, records: Sequence[Mapping[str, Any]]) -> WriteResult:
        return await self._write(OperationType.INSERT, collection, strip_user(records))

    async def upsert(
        self,
        collection: str,
        records: Sequence[Mapping[str, Any]],
        conflict_key: Sequence[str],
    ) -> WriteResult:
        return await self._write(OperationType.UPSERT, collection, strip_user(records), conflict_key)

    async def update(
        self, collection: str, match: Mapping[str, Any], values: Mapping[str, Any]
    ) -> WriteResult:
        return await self._write(
            OperationType.UPDATE, collection, {"match": dict(match), "values": dict(values)}
        )

    async def remove(self, collection: str, ids: Sequence[str]) -> WriteResult:
        return await self._write(OperationType.DELETE, collection, {"ids": list(ids)})
