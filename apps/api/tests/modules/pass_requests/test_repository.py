"""
Tests for pass request store operations.

These tests cover:
- Reading both storage layouts
- Skipping unreadable documents and finding garbage entries
- Creating, updating and deleting requests
- Status transition validation
"""

import pytest

from hostel_pass.core import store
from hostel_pass.modules.pass_requests import repository
from hostel_pass.modules.pass_requests.models import PassStatus, StorageLayout
from hostel_pass.modules.pass_requests.repository import InvalidStatusTransitionError


class TestCollectRequests:
    """Tests for flattening a passRequests snapshot."""

    def test_merges_both_layouts(self, make_document):
        tree = {
            "legacy1": make_document(),
            "REG001": {"abc": make_document(pass_type="home_visit")},
        }

        requests = repository.collect_requests(tree)

        by_id = {r.id: r for r in requests}
        assert set(by_id) == {"legacy1", "abc"}
        assert by_id["legacy1"].layout == StorageLayout.LEGACY
        assert by_id["legacy1"].path == "passRequests/legacy1"
        assert by_id["abc"].layout == StorageLayout.CURRENT
        assert by_id["abc"].path == "passRequests/REG001/abc"

    def test_stored_id_filled_from_key(self, make_document):
        requests = repository.collect_requests({"REG001": {"abc": make_document()}})
        assert requests[0].request.id == "abc"

    def test_unreadable_documents_skipped(self, make_document):
        tree = {
            "REG001": {
                "good": make_document(),
                "bad_type": make_document(pass_type="vacation"),
                "scalar": "junk",
            },
        }

        requests = repository.collect_requests(tree)

        assert [r.id for r in requests] == ["good"]

    def test_empty_tree(self):
        assert repository.collect_requests(None) == []
        assert repository.collect_requests("junk") == []

    def test_find_garbage_paths(self, make_document):
        tree = {
            "stray": 42,
            "legacy1": make_document(),
            "REG001": {"abc": make_document(), "oops": True},
        }

        assert sorted(repository.find_garbage_paths(tree)) == [
            "passRequests/REG001/oops",
            "passRequests/stray",
        ]

    def test_legacy_request_without_type_is_not_a_bucket(self, make_document):
        untyped = make_document()
        del untyped["type"]
        tree = {"legacy1": untyped, "scalars_only": {"emp_code": "REG009", "status": "x"}}

        assert repository.find_garbage_paths(tree) == []
        nodes = repository.collect_request_nodes(tree)
        assert [(n.id, n.layout) for n in nodes] == [
            ("legacy1", StorageLayout.LEGACY),
            ("scalars_only", StorageLayout.LEGACY),
        ]

    def test_request_nodes_include_unreadable_documents(self, make_document):
        tree = {"REG001": {"good": make_document(), "old": make_document(status="approved")}}

        nodes = repository.collect_request_nodes(tree)

        assert [n.path for n in nodes] == ["passRequests/REG001/good", "passRequests/REG001/old"]
        assert [r.id for r in repository.collect_requests(tree)] == ["good"]


class TestFilterForRequester:
    def test_bucket_and_matching_legacy_entries(self, make_document):
        tree = {
            "legacy_mine": make_document(emp_code="REG001"),
            "legacy_other": make_document(emp_code="REG002"),
            "REG001": {"a": make_document()},
            "REG002": {"b": make_document(emp_code="REG002")},
        }

        mine = repository.filter_for_requester(repository.collect_requests(tree), "REG001")

        assert sorted(r.id for r in mine) == ["a", "legacy_mine"]

    def test_requester_ids_are_sanitized(self, make_document):
        tree = {"REG_001": {"a": make_document(emp_code="REG.001")}}

        mine = repository.filter_for_requester(repository.collect_requests(tree), "REG.001")

        assert [r.id for r in mine] == ["a"]


class TestCreateAndRead:
    """Tests for create, get_by_id and fetch_for_requester."""

    @pytest.mark.asyncio
    async def test_create_writes_current_layout(self, db, make_document):
        stored = await repository.create(db, "REG001", make_document())

        raw = await store.get(db, f"passRequests/REG001/{stored.id}")
        assert raw["id"] == stored.id
        assert raw["status"] == "pending"
        assert stored.layout == StorageLayout.CURRENT

    @pytest.mark.asyncio
    async def test_get_by_id_direct_path(self, db, make_document):
        stored = await repository.create(db, "REG001", make_document())

        found = await repository.get_by_id(db, stored.id, "REG001")

        assert found.path == stored.path

    @pytest.mark.asyncio
    async def test_get_by_id_finds_legacy_entry(self, db, make_document):
        await store.set(db, "passRequests/legacy1", make_document())

        found = await repository.get_by_id(db, "legacy1", "REG001")

        assert found.layout == StorageLayout.LEGACY

    @pytest.mark.asyncio
    async def test_get_by_id_missing(self, db):
        assert await repository.get_by_id(db, "nope") is None

    @pytest.mark.asyncio
    async def test_fetch_for_requester(self, db, make_document):
        await store.set(db, "passRequests/legacy1", make_document())
        await repository.create(db, "REG001", make_document())
        await repository.create(db, "REG002", make_document(emp_code="REG002"))

        mine = await repository.fetch_for_requester(db, "REG001")

        assert len(mine) == 2


class TestUpdateStatus:
    """Tests for status updates."""

    @pytest.mark.asyncio
    async def test_valid_transition_merges_fields(self, db, make_document):
        stored = await repository.create(db, "REG001", make_document(pass_type="home_visit"))

        updated = await repository.update_status(
            db,
            stored,
            PassStatus.HOD_APPROVED,
            {"hodApprovedBy": {"username": "hod", "name": "Prof. Johnson", "department": "CSE"}},
        )

        assert updated.request.status == PassStatus.HOD_APPROVED
        assert updated.request.hod_approved_by.username == "hod"
        raw = await store.get(db, stored.path)
        assert raw["status"] == "hod_approved"
        assert raw["reason"] == "Family function"

    @pytest.mark.asyncio
    async def test_terminal_status_rejected(self, db, make_document):
        stored = await repository.create(db, "REG001", make_document(status="declined"))

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            await repository.update_status(db, stored, PassStatus.WARDEN_APPROVED, {})

        assert exc_info.value.current_status == PassStatus.DECLINED

    @pytest.mark.asyncio
    async def test_checks_stored_status_not_copy(self, db, make_document):
        stored = await repository.create(db, "REG001", make_document())
        await store.update(db, stored.path, {"status": "warden_approved"})

        with pytest.raises(InvalidStatusTransitionError):
            await repository.update_status(db, stored, PassStatus.DECLINED, {})

    @pytest.mark.asyncio
    async def test_missing_document(self, db, make_document):
        stored = await repository.create(db, "REG001", make_document())
        await store.remove(db, stored.path)

        with pytest.raises(ValueError):
            await repository.update_status(db, stored, PassStatus.DECLINED, {})


class TestDelete:
    """Tests for delete and delete_at."""

    @pytest.mark.asyncio
    async def test_delete_current_layout(self, db, make_document):
        stored = await repository.create(db, "REG001", make_document())

        assert await repository.delete(db, stored.id, "REG001") is True
        assert await store.get(db, stored.path) is None

    @pytest.mark.asyncio
    async def test_delete_falls_back_to_legacy(self, db, make_document):
        await store.set(db, "passRequests/legacy1", make_document())

        assert await repository.delete(db, "legacy1", "REG001") is True
        assert await store.get(db, "passRequests/legacy1") is None

    @pytest.mark.asyncio
    async def test_delete_never_removes_a_bucket(self, db, make_document):
        stored = await repository.create(db, "REG001", make_document())

        assert await repository.delete(db, "REG001") is False
        assert await store.get(db, stored.path) is not None

    @pytest.mark.asyncio
    async def test_delete_at_outside_pass_requests_rejected(self, db):
        with pytest.raises(store.InvalidPathError):
            await repository.delete_at(db, "students/CSE")
