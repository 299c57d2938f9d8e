"""
Integration tests for case endpoints.

Tests cover:
- Authentication requirements
- Case creation, retrieval and listing
- Lifecycle transitions and their conflict responses
- Comments, activity and assignment history
"""

import pytest
from httpx import AsyncClient


async def _open_case(client: AsyncClient, headers: dict, **overrides) -> dict:
    payload = {
        "title": "SMS gateway latency above 2s",
        "description": "p95 latency on smsc-01",
        "severity": "HIGH",
        "category": "QUALITY",
        **overrides,
    }
    response = await client.post("/api/v1/cases", json=payload, headers=headers)
    assert response.status_code == 201
    return response.json()


@pytest.mark.integration
class TestAuthentication:
    """Case endpoints need a bearer token."""

    @pytest.mark.asyncio
    async def test_list_requires_token(self, client: AsyncClient):
        response = await client.get("/api/v1/cases")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_token(self, client: AsyncClient):
        response = await client.get("/api/v1/cases", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or expired token"


@pytest.mark.integration
class TestCreateAndRead:
    """Tests for creating and reading cases."""

    @pytest.mark.asyncio
    async def test_create_case(self, client: AsyncClient, auth_headers):
        case = await _open_case(client, auth_headers)

        assert case["case_number"].startswith("CASE-")
        assert case["status"] == "OPEN"
        assert case["severity"] == "HIGH"
        assert case["priority"] == 2
        assert case["sla_deadline"] is not None

    @pytest.mark.asyncio
    async def test_create_with_assignee(self, client: AsyncClient, auth_headers, second_operator):
        case = await _open_case(client, auth_headers, assigned_user_id=second_operator.id)

        assert case["status"] == "ASSIGNED"
        assert case["assigned_user_ids"] == [second_operator.id]
        assert case["assigned_by"] == 7

    @pytest.mark.asyncio
    async def test_create_with_unknown_assignee(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/v1/cases",
            json={"title": "Roaming partner down", "assigned_user_id": 999},
            headers=auth_headers,
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "User not found: 999"

    @pytest.mark.asyncio
    async def test_create_validation(self, client: AsyncClient, auth_headers):
        response = await client.post("/api/v1/cases", json={"title": "x"}, headers=auth_headers)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_get_by_id_and_number(self, client: AsyncClient, auth_headers):
        case = await _open_case(client, auth_headers)

        by_id = await client.get(f"/api/v1/cases/{case['id']}", headers=auth_headers)
        by_number = await client.get(f"/api/v1/cases/{case['case_number'].lower()}", headers=auth_headers)

        assert by_id.status_code == 200
        assert by_number.json()["id"] == case["id"]

    @pytest.mark.asyncio
    async def test_get_unknown_case(self, client: AsyncClient, auth_headers):
        response = await client.get("/api/v1/cases/999", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"] == "Case not found: 999"

    @pytest.mark.asyncio
    async def test_list_filters(self, client: AsyncClient, auth_headers):
        assigned = await _open_case(client, auth_headers, assigned_user_id=7)
        unassigned = await _open_case(client, auth_headers, severity="LOW")

        response = await client.get("/api/v1/cases", params={"unassigned": "true"}, headers=auth_headers)
        assert [c["id"] for c in response.json()["items"]] == [unassigned["id"]]

        response = await client.get("/api/v1/cases", params={"assigned_user_id": 7}, headers=auth_headers)
        assert [c["id"] for c in response.json()["items"]] == [assigned["id"]]

        response = await client.get("/api/v1/cases", params={"severity": "LOW"}, headers=auth_headers)
        data = response.json()
        assert data["total"] == 1
        assert data["total_pages"] == 1


@pytest.mark.integration
class TestLifecycle:
    """Tests for lifecycle endpoints."""

    @pytest.mark.asyncio
    async def test_close_open_case_conflicts(self, client: AsyncClient, auth_headers):
        case = await _open_case(client, auth_headers)

        response = await client.post(
            f"/api/v1/cases/{case['id']}/close", json={"reason": "done"}, headers=auth_headers,
        )

        assert response.status_code == 409
        data = response.json()
        assert data["event"] == "CLOSE"
        assert data["current_status"] == "OPEN"

        unchanged = await client.get(f"/api/v1/cases/{case['id']}", headers=auth_headers)
        assert unchanged.json()["status"] == "OPEN"

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, client: AsyncClient, auth_headers, operator):
        case = await _open_case(client, auth_headers)
        ref = case["case_number"]

        response = await client.post(
            f"/api/v1/cases/{ref}/assign", json={"user_id": operator.id}, headers=auth_headers,
        )
        assert response.json()["status"] == "ASSIGNED"

        response = await client.post(
            f"/api/v1/cases/{ref}/acknowledge", json={"comment": "On it"}, headers=auth_headers,
        )
        assert response.json()["status"] == "IN_PROGRESS"
        assert response.json()["acknowledged_at"] is not None

        response = await client.post(
            f"/api/v1/cases/{ref}/resolve",
            json={"resolution": "Restarted SMSC worker", "root_cause": "Thread pool exhaustion"},
            headers=auth_headers,
        )
        assert response.json()["status"] == "RESOLVED"
        assert response.json()["root_cause"] == "Thread pool exhaustion"

        response = await client.post(
            f"/api/v1/cases/{ref}/reopen", json={"reason": "Latency is back"}, headers=auth_headers,
        )
        assert response.json()["status"] == "IN_PROGRESS"
        assert response.json()["resolved_at"] is None

        response = await client.post(f"/api/v1/cases/{ref}/close", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "CLOSED"
        assert response.json()["closed_by"] == operator.id

        response = await client.post(f"/api/v1/cases/{ref}/cancel", headers=auth_headers)
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_acknowledge_unassigned_case_conflicts(self, client: AsyncClient, auth_headers):
        case = await _open_case(client, auth_headers)

        response = await client.post(f"/api/v1/cases/{case['id']}/acknowledge", headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["event"] == "ACKNOWLEDGE"

    @pytest.mark.asyncio
    async def test_assign_without_assignee(self, client: AsyncClient, auth_headers):
        case = await _open_case(client, auth_headers)

        response = await client.post(f"/api/v1/cases/{case['id']}/assign", json={}, headers=auth_headers)

        assert response.status_code in (400, 422)

    @pytest.mark.asyncio
    async def test_status_update_with_console_label(self, client: AsyncClient, auth_headers):
        case = await _open_case(client, auth_headers, assigned_user_id=7)

        response = await client.put(
            f"/api/v1/cases/{case['id']}/status",
            json={"status": "PENDING_VENDOR", "note": "Waiting on vendor ticket"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "IN_PROGRESS"

    @pytest.mark.asyncio
    async def test_status_update_to_open_rejected(self, client: AsyncClient, auth_headers):
        case = await _open_case(client, auth_headers)

        response = await client.put(
            f"/api/v1/cases/{case['id']}/status", json={"status": "OPEN"}, headers=auth_headers,
        )

        assert response.status_code == 409
        assert response.json()["event"] == "SET_STATUS"


@pytest.mark.integration
class TestTimeline:
    """Tests for comments, activity and assignment history."""

    @pytest.mark.asyncio
    async def test_comments(self, client: AsyncClient, auth_headers):
        case = await _open_case(client, auth_headers)

        created = await client.post(
            f"/api/v1/cases/{case['id']}/comments",
            json={"comment": "Customer reports delays", "is_internal": True},
            headers=auth_headers,
        )
        assert created.status_code == 201
        assert created.json()["user_id"] == 7

        all_comments = await client.get(f"/api/v1/cases/{case['id']}/comments", headers=auth_headers)
        public = await client.get(
            f"/api/v1/cases/{case['id']}/comments", params={"include_internal": "false"}, headers=auth_headers,
        )
        assert len(all_comments.json()) == 1
        assert public.json() == []

    @pytest.mark.asyncio
    async def test_activities(self, client: AsyncClient, auth_headers):
        case = await _open_case(client, auth_headers, assigned_user_id=7)

        response = await client.get(f"/api/v1/cases/{case['id']}/activities", headers=auth_headers)

        types = [a["activity_type"] for a in response.json()]
        assert types[:2] == ["CREATED", "ASSIGNED"]

    @pytest.mark.asyncio
    async def test_assignment_history(self, client: AsyncClient, auth_headers, second_operator):
        case = await _open_case(client, auth_headers, assigned_user_id=7)
        await client.post(
            f"/api/v1/cases/{case['id']}/assign",
            json={"user_id": second_operator.id, "reason": "SHIFT_CHANGE", "notes": "Night shift"},
            headers=auth_headers,
        )

        response = await client.get(f"/api/v1/cases/{case['id']}/assignment-history", headers=auth_headers)

        entries = response.json()
        assert [e["reason"] for e in entries] == ["INITIAL", "SHIFT_CHANGE"]
        assert entries[1]["from_user_id"] == 7
        assert entries[1]["to_user_id"] == second_operator.id
        assert entries[1]["summary"] == "Reassigned from user 7 to user 8"
