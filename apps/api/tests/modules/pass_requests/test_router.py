"""
Tests for the student and staff pass request endpoints.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from fastapi import FastAPI, WebSocketDisconnect
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from hostel_pass.api import api_router
from hostel_pass.core.database import get_db
from hostel_pass.core.security import create_access_token
from hostel_pass.modules.pass_requests.models import format_timestamp
from hostel_pass.modules.pass_requests.router import _list_payload, _offer_latest


def _auth(username: str, role: str, **claims) -> dict[str, str]:
    token = create_access_token(username, {"role": role, **claims})
    return {"Authorization": f"Bearer {token}"}


STUDENT = _auth("REG001", "student", name="John Doe", department="CSE", block="A(Boys)")
WARDEN = _auth("warden", "warden", name="Dr. Smith", block="A(Boys)")
HOD = _auth("hod", "hod", name="Prof. Johnson", department="CSE")


@pytest_asyncio.fixture
async def client(db, directory_data):
    app = FastAPI()
    app.include_router(api_router, prefix="/api/v1")

    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def _submit(client, pass_type="outing", reason="Shopping"):
    return await client.post(
        "/api/v1/pass-requests",
        json={"type": pass_type, "date": "2026-03-11", "reason": reason},
        headers=STUDENT,
    )


class TestStudentEndpoints:
    """Tests for /pass-requests."""

    @pytest.mark.asyncio
    async def test_submit_and_list(self, client):
        created = await _submit(client)

        assert created.status_code == 201
        body = created.json()
        assert body["status"] == "pending"
        assert body["layout"] == "current"
        assert body["assigned_warden"]["username"] == "warden"
        assert body["expiry"]["expired"] is False
        assert body["expiry"]["pass_time_remaining"] == "-"

        mine = await client.get("/api/v1/pass-requests/mine", headers=STUDENT)
        assert mine.json()["total"] == 1
        assert mine.json()["items"][0]["id"] == body["id"]

    @pytest.mark.asyncio
    async def test_duplicate_submission(self, client):
        await _submit(client)
        duplicate = await _submit(client)

        assert duplicate.status_code == 429
        assert duplicate.json()["detail"]["error"] == "DUPLICATE_SUBMISSION"

    @pytest.mark.asyncio
    async def test_staff_cannot_submit(self, client):
        response = await client.post(
            "/api/v1/pass-requests",
            json={"type": "outing", "date": "d", "reason": "r"},
            headers=WARDEN,
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_invalid_type_rejected(self, client):
        response = await client.post(
            "/api/v1/pass-requests",
            json={"type": "vacation", "date": "d", "reason": "r"},
            headers=STUDENT,
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delete_pending_then_missing(self, client):
        request_id = (await _submit(client)).json()["id"]

        deleted = await client.delete(f"/api/v1/pass-requests/{request_id}", headers=STUDENT)
        again = await client.delete(f"/api/v1/pass-requests/{request_id}", headers=STUDENT)

        assert deleted.status_code == 200
        assert again.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_approved_conflict(self, client):
        request_id = (await _submit(client)).json()["id"]
        await client.post(f"/api/v1/staff/pass-requests/{request_id}/approve", headers=WARDEN)

        response = await client.delete(f"/api/v1/pass-requests/{request_id}", headers=STUDENT)

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "CANNOT_DELETE_REQUEST"


class TestStaffEndpoints:
    """Tests for /staff/pass-requests."""

    @pytest.mark.asyncio
    async def test_home_visit_chain(self, client):
        request_id = (await _submit(client, "home_visit", "Wedding")).json()["id"]

        early = await client.post(
            f"/api/v1/staff/pass-requests/{request_id}/approve", headers=WARDEN
        )
        assert early.status_code == 409
        assert early.json()["detail"]["error"] == "INVALID_TRANSITION"

        hod_queue = await client.get("/api/v1/staff/pass-requests", headers=HOD)
        assert [item["id"] for item in hod_queue.json()["items"]] == [request_id]

        hod_step = await client.post(
            f"/api/v1/staff/pass-requests/{request_id}/approve", headers=HOD
        )
        assert hod_step.json()["status"] == "hod_approved"

        final = await client.post(
            f"/api/v1/staff/pass-requests/{request_id}/approve", headers=WARDEN
        )
        assert final.status_code == 200
        assert final.json()["status"] == "warden_approved"
        assert final.json()["expiry"]["pass_expired"] is False

    @pytest.mark.asyncio
    async def test_queue_type_filter(self, client):
        await _submit(client, "outing", "Shopping")
        await _submit(client, "home_visit", "Wedding")

        response = await client.get(
            "/api/v1/staff/pass-requests", params={"type": "outing"}, headers=WARDEN
        )

        assert response.json()["total"] == 1
        assert response.json()["items"][0]["type"] == "outing"

    @pytest.mark.asyncio
    async def test_students_cannot_review(self, client):
        response = await client.get("/api/v1/staff/pass-requests", headers=STUDENT)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_request(self, client):
        response = await client.post("/api/v1/staff/pass-requests/nope/decline", headers=WARDEN)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_bulk_decline(self, client):
        await _submit(client, "outing", "Shopping")
        await _submit(client, "outing", "Doctor")

        response = await client.post(
            "/api/v1/staff/pass-requests/decline-all", params={"type": "outing"}, headers=WARDEN
        )

        assert response.status_code == 200
        assert response.json()["succeeded"] == 2
        assert all(r["new_status"] == "declined" for r in response.json()["results"])

    @pytest.mark.asyncio
    async def test_urgent_stats(self, client):
        response = await client.get("/api/v1/staff/pass-requests/urgent-stats", headers=WARDEN)
        assert response.json() == {"total_urgent": 0, "urgent_outing": 0, "urgent_home_visit": 0}

    @pytest.mark.asyncio
    async def test_bulk_rate_limited(self, client):
        responses = [
            await client.post(
                "/api/v1/staff/pass-requests/approve-all",
                params={"type": "outing"},
                headers=WARDEN,
            )
            for _ in range(6)
        ]

        assert [r.status_code for r in responses] == [200] * 5 + [429]
        assert responses[-1].json()["detail"]["error"] == "RATE_LIMIT_EXCEEDED"


class TestRequestStream:
    """Tests for the /pass-requests/stream websocket."""

    @pytest.mark.parametrize("token", ["garbage", WARDEN["Authorization"].split()[1]])
    def test_rejects_non_student_tokens(self, token):
        app = FastAPI()
        app.include_router(api_router, prefix="/api/v1")

        with TestClient(app) as test_client:
            with pytest.raises(WebSocketDisconnect):
                with test_client.websocket_connect(f"/api/v1/pass-requests/stream?token={token}"):
                    pass

    def test_payload_lists_only_own_live_requests(self):
        created = format_timestamp(datetime.now(UTC) - timedelta(hours=1))
        stale = format_timestamp(datetime.now(UTC) - timedelta(days=4))
        tree = {
            "REG001": {
                "a": {"type": "outing", "emp_code": "REG001", "createdAt": created},
                "old": {"type": "outing", "emp_code": "REG001", "createdAt": stale},
            },
            "REG002": {"b": {"type": "outing", "emp_code": "REG002", "createdAt": created}},
        }

        payload = _list_payload(tree, "REG001")

        assert payload["total"] == 1
        assert payload["items"][0]["id"] == "a"

    def test_slow_client_only_gets_latest_snapshot(self):
        snapshots = asyncio.Queue(maxsize=1)

        for version in range(5):
            _offer_latest(snapshots, {"version": version})

        assert snapshots.qsize() == 1
        assert snapshots.get_nowait() == {"version": 4}
