"""
Store interface shared by the local (guest) and remote backends.

Both backends expose the same collection-oriented operations so the
service never branches on which one it holds:

    get / put        - one record addressed by its key fields
    insert           - append records
    select           - filtered, ordered read
    upsert           - insert-or-merge on a conflict key
    update / remove  - targeted changes

Every operation is async. The local store completes synchronously under
the hood; the remote store suspends on the network.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class StoreScope(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class OperationType(str, Enum):
    """Write kinds, as recorded in the offline queue."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    UPSERT = "UPSERT"


@dataclass
class WriteResult:
    """Outcome of a write that did not fail."""

    records: list[dict[str, Any]] = field(default_factory=list)
    queued: bool = False  # Deferred to the offline queue

    @property
    def first(self) -> dict[str, Any] | None:
        return self.records[0] if self.records else None


class Store(ABC):
    """Persistence façade for one identity scope."""

    scope: StoreScope

    @abstractmethod
    async def insert(self, collection: str, records: Sequence[Mapping[str, Any]]) -> WriteResult:
        """Append records to a collection."""

    @abstractmethod
    async def select(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Read records matching every equality filter."""

    @abstractmethod
    async def upsert(
        self,
        collection: str,
        records: Sequence[Mapping[str, Any]],
        conflict_key: Sequence[str],
    ) -> WriteResult:
        """Insert records, merging into existing ones that share the conflict key."""

    @abstractmethod
    async def update(
        self, collection: str, match: Mapping[str, Any], values: Mapping[str, Any]
    ) -> WriteResult:
        """Set ``values`` on every record matching ``match``."""

    @abstractmethod
    async def remove(self, collection: str, ids: Sequence[str]) -> WriteResult:
        """Delete records by id."""

    async def get(self, collection: str, key: Mapping[str, Any]) -> dict[str, Any] | None:
        """Fetch the single record addressed by ``key``, if any."""
        rows = await self.select(collection, filters=key, limit=1)
        return rows[0] if rows else None

    async def put(
        self, collection: str, key: Mapping[str, Any], value: Mapping[str, Any]
    ) -> WriteResult:
        """Write the record addressed by ``key`` (last write wins)."""
        return await self.upsert(collection, [{**value, **key}], conflict_key=list(key))


def matches(record: Mapping[str, Any], filters: Mapping[str, Any] | None) -> bool:
    """Equality match on every filter field."""
    if not filters:
        return True
    return all(record.get(name) == value for name, value in filters.items())
