"""
Sync between the local and remote stores.

Components:
- offline_queue: durable retrying write-behind log for remote writes
- migration: one-time guest -> authenticated data transfer
"""

from learnsync.sync.migration import GuestDataMigration, MigrationResult
from learnsync.sync.offline_queue import (
    DrainResult,
    DrainSkipReason,
    OfflineQueue,
    QueueItem,
    SyncResult,
    SyncStatus,
)

__all__ = [
    "DrainResult",
    "DrainSkipReason",
    "GuestDataMigration",
    "MigrationResult",
    "OfflineQueue",
    "QueueItem",
    "SyncResult",
    "SyncStatus",
]
