"""
Tests for the path-addressed document store.

These tests cover:
- Reads assembled from ancestor and descendant rows
- set/update/remove/push semantics, including pruning of empty objects
- Push key ordering
- Subscriptions
"""

import pytest

from hostel_pass.core import store
from hostel_pass.core.store import InvalidPathError


class TestPathHelpers:
    """Tests for key sanitizing and push keys."""

    def test_sanitize_key_replaces_forbidden_characters(self):
        assert store.sanitize_key("a.b#c$d[e]f/g") == "a_b_c_d_e_f_g"

    def test_sanitize_key_keeps_plain_keys(self):
        assert store.sanitize_key("REG001") == "REG001"

    def test_push_ids_are_twenty_characters(self):
        assert len(store.generate_push_id()) == 20

    def test_push_ids_sort_by_creation_time(self):
        earlier = store.generate_push_id(now_ms=1_700_000_000_000)
        later = store.generate_push_id(now_ms=1_700_000_000_001)
        much_later = store.generate_push_id(now_ms=1_800_000_000_000)
        assert earlier < later < much_later


class TestGetAndSet:
    """Tests for reading and replacing subtrees."""

    @pytest.mark.asyncio
    async def test_get_missing_path_returns_none(self, db):
        assert await store.get(db, "nothing/here") is None

    @pytest.mark.asyncio
    async def test_set_then_get_roundtrip(self, db):
        await store.set(db, "passRequests/REG001/abc", {"type": "outing"})
        assert await store.get(db, "passRequests/REG001/abc") == {"type": "outing"}

    @pytest.mark.asyncio
    async def test_get_assembles_descendant_rows(self, db):
        await store.set(db, "passRequests/REG001/a", {"type": "outing"})
        await store.set(db, "passRequests/REG002/b", {"type": "home_visit"})

        tree = await store.get(db, "passRequests")

        assert tree == {
            "REG001": {"a": {"type": "outing"}},
            "REG002": {"b": {"type": "home_visit"}},
        }

    @pytest.mark.asyncio
    async def test_get_reads_inside_ancestor_row(self, db):
        await store.set(db, "warden", {"W001": {"username": "warden", "block": "A"}})
        assert await store.get(db, "warden/W001/block") == "A"
        assert await store.get(db, "warden/W002") is None

    @pytest.mark.asyncio
    async def test_set_under_ancestor_row_merges_into_it(self, db):
        await store.set(db, "warden", {"W001": {"username": "warden"}})
        await store.set(db, "warden/W002", {"username": "warden2"})

        assert await store.get(db, "warden") == {
            "W001": {"username": "warden"},
            "W002": {"username": "warden2"},
        }

    @pytest.mark.asyncio
    async def test_set_replaces_descendant_rows(self, db):
        await store.set(db, "passRequests/REG001/a", {"type": "outing"})
        await store.set(db, "passRequests/REG001/b", {"type": "outing"})

        await store.set(db, "passRequests", {"x": {"type": "home_visit"}})

        assert await store.get(db, "passRequests") == {"x": {"type": "home_visit"}}
        assert await store.get(db, "passRequests/REG001") is None

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, db):
        await store.set(db, "a/b", {"c": 1})
        value = await store.get(db, "a/b")
        value["c"] = 2
        assert await store.get(db, "a/b") == {"c": 1}

    @pytest.mark.asyncio
    async def test_set_none_removes(self, db):
        await store.set(db, "a/b", {"c": 1})
        await store.set(db, "a/b", None)
        assert await store.get(db, "a") is None

    @pytest.mark.asyncio
    async def test_empty_path_rejected(self, db):
        with pytest.raises(InvalidPathError):
            await store.get(db, "/")


class TestUpdateRemovePush:
    """Tests for update, remove and push."""

    @pytest.mark.asyncio
    async def test_update_merges_and_deletes_none_fields(self, db):
        await store.set(db, "req", {"status": "pending", "reason": "Trip", "note": "x"})

        await store.update(db, "req", {"status": "declined", "note": None})

        assert await store.get(db, "req") == {"status": "declined", "reason": "Trip"}

    @pytest.mark.asyncio
    async def test_update_creates_missing_object(self, db):
        await store.update(db, "req", {"status": "pending"})
        assert await store.get(db, "req") == {"status": "pending"}

    @pytest.mark.asyncio
    async def test_update_rejects_nested_field_names(self, db):
        with pytest.raises(InvalidPathError):
            await store.update(db, "req", {"a/b": 1})

    @pytest.mark.asyncio
    async def test_remove_prunes_empty_parents(self, db):
        await store.set(db, "passRequests/REG001", {"only": {"type": "outing"}})

        await store.remove(db, "passRequests/REG001/only")

        assert await store.get(db, "passRequests/REG001") is None
        assert await store.get(db, "passRequests") is None

    @pytest.mark.asyncio
    async def test_remove_missing_path_is_noop(self, db):
        await store.remove(db, "does/not/exist")
        assert await store.get(db, "does") is None

    @pytest.mark.asyncio
    async def test_push_stores_under_new_key(self, db):
        first = await store.push(db, "passRequests/REG001", {"type": "outing"})
        second = await store.push(db, "passRequests/REG001", {"type": "home_visit"})

        bucket = await store.get(db, "passRequests/REG001")

        assert first != second
        assert bucket[first] == {"type": "outing"}
        assert bucket[second] == {"type": "home_visit"}


class TestSubscribe:
    """Tests for change subscriptions."""

    @pytest.mark.asyncio
    async def test_subscriber_receives_snapshot_after_write(self, db):
        snapshots = []

        async def on_change(snapshot):
            snapshots.append(snapshot)

        store.subscribe("passRequests", on_change)
        await store.set(db, "passRequests/REG001/a", {"type": "outing"})

        assert snapshots == [{"REG001": {"a": {"type": "outing"}}}]

    @pytest.mark.asyncio
    async def test_unrelated_writes_do_not_notify(self, db):
        snapshots = []

        async def on_change(snapshot):
            snapshots.append(snapshot)

        store.subscribe("passRequests", on_change)
        await store.set(db, "warden/W001", {"username": "warden"})

        assert snapshots == []

    @pytest.mark.asyncio
    async def test_cancelled_subscription_is_silent(self, db):
        snapshots = []

        async def on_change(snapshot):
            snapshots.append(snapshot)

        subscription = store.subscribe("passRequests", on_change)
        subscription.cancel()
        await store.set(db, "passRequests/REG001/a", {"type": "outing"})

        assert snapshots == []

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_break_write(self, db):
        async def broken(snapshot):
            raise RuntimeError("boom")

        store.subscribe("passRequests", broken)
        await store.set(db, "passRequests/REG001/a", {"type": "outing"})

        assert await store.get(db, "passRequests/REG001/a") == {"type": "outing"}
