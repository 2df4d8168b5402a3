"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import itertools
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from learnsync.exceptions import TransientPersistenceError  # noqa: E402
from learnsync.identity import Identity, StaticIdentityResolver  # noqa: E402
from learnsync.service import LearningProgressService  # noqa: E402
from learnsync.storage.local_store import LocalStore  # noqa: E402
from learnsync.sync.offline_queue import OfflineQueue  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (require a remote store)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


class FakeRemoteClient:
    """
    In-memory stand-in for RemoteClient.

    Tables are lists of row dicts. Set ``online = False`` to make every
    call fail transiently, or put table names in ``failing_tables`` to
    fail writes to just those tables.
    """

    def __init__(self):
        self.tables = {}
        self.online = True
        self.failing_tables = set()
        self.calls = []
        self._ids = itertools.count(1)

    def _check(self, table, write=True):
        if not self.online:
            raise TransientPersistenceError("network unavailable")
        if write and table in self.failing_tables:
            raise TransientPersistenceError(f"{table} unavailable", status_code=503)

    def _rows(self, table):
        return self.tables.setdefault(table, [])

    @staticmethod
    def _matches(row, filters):
        return all(row.get(k) == v for k, v in (filters or {}).items())

    async def select(self, table, filters=None, order_by=None, descending=True, limit=None):
        self.calls.append(("select", table, filters))
        self._check(table, write=False)
        rows = [dict(r) for r in self._rows(table) if self._matches(r, filters)]
        if order_by:
            rows.sort(key=lambda r: r.get(order_by) or "", reverse=descending)
        return rows[:limit] if limit is not None else rows

    async def insert(self, table, rows):
        self.calls.append(("insert", table, rows))
        self._check(table)
        created = [{"id": f"remote-{next(self._ids)}", **dict(r)} for r in rows]
        self._rows(table).extend(created)
        return [dict(r) for r in created]

    async def upsert(self, table, rows, on_conflict):
        self.calls.append(("upsert", table, rows, list(on_conflict)))
        self._check(table)
        written = []
        for row in rows:
            key = {c: row.get(c) for c in on_conflict}
            existing = next((r for r in self._rows(table) if self._matches(r, key)), None)
            if existing is not None:
                existing.update(row)
                written.append(dict(existing))
            else:
                created = {"id": f"remote-{next(self._ids)}", **dict(row)}
                self._rows(table).append(created)
                written.append(dict(created))
        return written

    async def update(self, table, match, values):
        self.calls.append(("update", table, match, values))
        self._check(table)
        updated = []
        for row in self._rows(table):
            if self._matches(row, match):
                row.update(values)
                updated.append(dict(row))
        return updated

    async def delete(self, table, ids, match=None):
        self.calls.append(("delete", table, list(ids), match))
        self._check(table)
        wanted = set(ids)
        keep = [r for r in self._rows(table) if not (r.get("id") in wanted and self._matches(r, match))]
        removed = [r for r in self._rows(table) if r not in keep]
        self.tables[table] = keep
        return removed

    async def health_check(self):
        return self.online

    async def close(self):
        pass


@pytest.fixture
def local_store(tmp_path):
    """Local store on a temporary SQLite file."""
    store = LocalStore(tmp_path / "state.db")
    yield store
    store.close()


@pytest.fixture
def offline_queue(local_store):
    """Offline queue persisted in the temporary local store."""
    return OfflineQueue(local_store, max_retries=3, identity_timeout_seconds=0.5)


@pytest.fixture
def fake_remote():
    return FakeRemoteClient()


@pytest.fixture
def user_identity():
    return Identity(id="user-123")


@pytest.fixture
def guest_service(local_store, offline_queue):
    """Service for a guest with no remote store configured."""
    return LearningProgressService(
        local=local_store,
        identity_resolver=StaticIdentityResolver(Identity.guest()),
        queue=offline_queue,
    )


@pytest.fixture
def user_service(local_store, offline_queue, fake_remote, user_identity):
    """Service for an authenticated user backed by the fake remote."""
    return LearningProgressService(
        local=local_store,
        identity_resolver=StaticIdentityResolver(user_identity),
        remote_client=fake_remote,
        queue=offline_queue,
    )
