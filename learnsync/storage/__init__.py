"""
Storage backends.

- base: Store interface, write result and operation kinds
- local_store: SQLite-backed device-local store (guest scope)
- remote_client: HTTP client for the remote tabular API
- remote_store: user-bound remote store with offline write-behind
"""

from learnsync.storage.base import OperationType, Store, StoreScope, WriteResult
from learnsync.storage.local_store import LocalStore

__all__ = ["LocalStore", "OperationType", "Store", "StoreScope", "WriteResult"]
