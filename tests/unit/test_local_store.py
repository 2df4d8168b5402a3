"""
Unit tests for the SQLite-backed local store.
"""

import pytest

from learnsync.core.constants import HISTORY_COLLECTION, MASTERY_COLLECTION, SCORES_COLLECTION
from learnsync.storage.base import StoreScope
from learnsync.storage.local_store import LocalStore, new_record_id


class TestRawValues:
    """Tests for the key-value layer."""

    def test_missing_key_returns_default(self, local_store):
        assert local_store.read_value("nothing") is None
        assert local_store.read_value("nothing", default=[]) == []

    def test_write_then_read(self, local_store):
        local_store.write_value("k", {"a": [1, 2]})
        assert local_store.read_value("k") == {"a": [1, 2]}
        assert local_store.has_value("k")

    def test_last_write_wins(self, local_store):
        local_store.write_value("k", 1)
        local_store.write_value("k", 2)
        assert local_store.read_value("k") == 2

    def test_delete(self, local_store):
        local_store.write_value("k", 1)
        local_store.delete_value("k")
        assert not local_store.has_value("k")

    def test_survives_reopen(self, tmp_path):
        store = LocalStore(tmp_path / "state.db")
        store.write_value("k", "v")
        store.close()

        reopened = LocalStore(tmp_path / "state.db")
        assert reopened.read_value("k") == "v"
        reopened.close()


class TestCollections:
    """Tests for the store interface over JSON collections."""

    def test_scope(self, local_store):
        assert local_store.scope is StoreScope.LOCAL

    @pytest.mark.asyncio
    async def test_insert_assigns_ids(self, local_store):
        result = await local_store.insert(HISTORY_COLLECTION, [{"subject": "math"}])

        assert result.first["id"].startswith("q-")
        assert result.queued is False

    @pytest.mark.asyncio
    async def test_select_filters_orders_and_limits(self, local_store):
        await local_store.insert(
            HISTORY_COLLECTION,
            [
                {"subject": "math", "created_at": "2025-01-01"},
                {"subject": "math", "created_at": "2025-01-03"},
                {"subject": "art", "created_at": "2025-01-02"},
            ],
        )

        rows = await local_store.select(
            HISTORY_COLLECTION, filters={"subject": "math"}, order_by="created_at", limit=1
        )

        assert [r["created_at"] for r in rows] == ["2025-01-03"]

    @pytest.mark.asyncio
    async def test_put_then_get(self, local_store):
        key = {"subject": "math", "topic": "fractions"}
        await local_store.put(MASTERY_COLLECTION, key, {"total_questions": 3})
        await local_store.put(MASTERY_COLLECTION, key, {"total_questions": 4})

        row = await local_store.get(MASTERY_COLLECTION, key)

        assert row["total_questions"] == 4
        assert len(local_store.load_collection(MASTERY_COLLECTION)) == 1

    @pytest.mark.asyncio
    async def test_get_missing(self, local_store):
        assert await local_store.get(SCORES_COLLECTION, {"subject": "x", "topic": "y"}) is None

    @pytest.mark.asyncio
    async def test_update_merges_values(self, local_store):
        key = {"subject": "math", "topic": "fractions"}
        await local_store.put(MASTERY_COLLECTION, key, {"difficulty_changes_session": 3, "total_questions": 9})

        result = await local_store.update(MASTERY_COLLECTION, key, {"difficulty_changes_session": 0})

        assert len(result.records) == 1
        row = await local_store.get(MASTERY_COLLECTION, key)
        assert row["difficulty_changes_session"] == 0
        assert row["total_questions"] == 9

    @pytest.mark.asyncio
    async def test_remove(self, local_store):
        created = await local_store.insert(HISTORY_COLLECTION, [{"n": 1}, {"n": 2}])

        await local_store.remove(HISTORY_COLLECTION, [created.records[0]["id"]])

        assert [r["n"] for r in local_store.load_collection(HISTORY_COLLECTION)] == [2]

    @pytest.mark.asyncio
    async def test_history_keeps_newest_entries(self, tmp_path):
        store = LocalStore(tmp_path / "capped.db", history_limit=3)
        for n in range(5):
            await store.insert(HISTORY_COLLECTION, [{"n": n}])

        assert [r["n"] for r in store.load_collection(HISTORY_COLLECTION)] == [2, 3, 4]
        store.close()

    @pytest.mark.asyncio
    async def test_has_data_and_clear(self, local_store):
        assert not local_store.has_data([HISTORY_COLLECTION, SCORES_COLLECTION])

        await local_store.insert(SCORES_COLLECTION, [{"subject": "math"}])
        assert local_store.has_data([HISTORY_COLLECTION, SCORES_COLLECTION])

        local_store.clear_collection(SCORES_COLLECTION)
        assert not local_store.has_data([HISTORY_COLLECTION, SCORES_COLLECTION])


def test_new_record_id_format():
    prefix, millis, suffix = new_record_id().split("-")

    assert prefix == "q"
    assert millis.isdigit()
    assert len(suffix) == 9
