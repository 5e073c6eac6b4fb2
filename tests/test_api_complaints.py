"""
End-to-end tests for the HTTP API.

Every response uses the envelope {"success", "message", "data"} and camelCase
keys. Errors carry {"success": false, "message"} with the mapped status.
"""

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from grievance_desk.models import OrganizationStatus, UserRole

from conftest import TEST_PASSWORD, bearer, create_org, create_user

COMPLAINT = {
    "title": "Broken lab equipment",
    "description": "The fume hood in lab 3 has not worked for two weeks now.",
    "category": "infrastructure",
}
REASON = {"reason": "Credible threat reported against the filer"}


async def file_complaint(client: httpx.AsyncClient, student, **overrides) -> str:
    response = await client.post(
        "/api/complaints", json={**COMPLAINT, **overrides}, headers=bearer(student)
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]["trackingId"]


# =============================================================================
# TEST: AUTHENTICATION
# =============================================================================


class TestAuth:

    async def test_admin_registration_creates_organization(self, client: httpx.AsyncClient):
        response = await client.post(
            "/api/auth/register",
            json={
                "name": "Dean Okafor",
                "email": "Dean@Lakeside.edu",
                "password": TEST_PASSWORD,
                "college": "Lakeside Institute",
                "role": "admin",
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["user"]["email"] == "dean@lakeside.edu"
        assert body["data"]["organization"]["slug"] == "lakeside-institute"
        assert body["data"]["token"]

    async def test_student_needs_existing_organization(self, client: httpx.AsyncClient):
        response = await client.post(
            "/api/auth/register",
            json={
                "name": "Asha Verma",
                "email": "asha@nowhere.edu",
                "password": TEST_PASSWORD,
                "college": "Nowhere College",
            },
        )

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "message": "Organization 'Nowhere College' not registered. "
            "Please ask your administrator to sign up first.",
        }

    @pytest.mark.parametrize("role", ["admin", "committee-admin"])
    async def test_staff_cannot_self_register_into_existing_organization(
        self, client: httpx.AsyncClient, campus, role
    ):
        tracking_id = await file_complaint(client, campus.student)

        response = await client.post(
            "/api/auth/register",
            json={
                "name": "Mallory Quinn",
                "email": "mallory@example.org",
                "password": TEST_PASSWORD,
                "college": campus.org.name,
                "role": role,
            },
        )

        assert response.status_code == 403
        assert response.json() == {
            "success": False,
            "message": "Staff accounts for a registered organization are created by its administrator",
        }
        login = await client.post(
            "/api/auth/login",
            json={"email": "mallory@example.org", "password": TEST_PASSWORD},
        )
        assert login.status_code == 401

        log = await client.get(
            f"/api/complaints/{tracking_id}/access-log", headers=bearer(campus.admin)
        )
        assert log.json()["data"] == []

    async def test_admin_creates_committee_account(self, client: httpx.AsyncClient, campus):
        response = await client.post(
            "/api/auth/staff",
            json={
                "name": "Priya Nair",
                "email": "Priya.Nair@Riverside.edu",
                "password": TEST_PASSWORD,
                "role": "committee-admin",
            },
            headers=bearer(campus.admin),
        )

        assert response.status_code == 201
        created = response.json()["data"]
        assert created["role"] == "committee-admin"
        assert created["organizationId"] == str(campus.org.id)

        login = await client.post(
            "/api/auth/login",
            json={"email": "priya.nair@riverside.edu", "password": TEST_PASSWORD},
        )
        token = login.json()["data"]["token"]
        listing = await client.get(
            "/api/complaints", headers={"Authorization": f"Bearer {token}"}
        )
        assert listing.status_code == 200

    @pytest.mark.parametrize("creator", ["committee", "student"])
    async def test_only_admins_create_staff_accounts(
        self, client: httpx.AsyncClient, campus, creator
    ):
        response = await client.post(
            "/api/auth/staff",
            json={
                "name": "Mallory Quinn",
                "email": "mallory@example.org",
                "password": TEST_PASSWORD,
                "role": "admin",
            },
            headers=bearer(getattr(campus, creator)),
        )

        assert response.status_code == 403

    async def test_staff_account_must_be_staff_role(self, client: httpx.AsyncClient, campus):
        response = await client.post(
            "/api/auth/staff",
            json={
                "name": "Lena Park",
                "email": "lena@riverside.edu",
                "password": TEST_PASSWORD,
                "role": "student",
            },
            headers=bearer(campus.admin),
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Role must be admin or committee-admin"

    async def test_duplicate_email(self, client: httpx.AsyncClient, campus):
        response = await client.post(
            "/api/auth/register",
            json={
                "name": "Someone Else",
                "email": campus.student.email,
                "password": TEST_PASSWORD,
                "college": campus.org.name,
            },
        )

        assert response.status_code == 400
        assert response.json()["message"] == "User already exists with this email"

    async def test_login_and_me(self, client: httpx.AsyncClient, campus):
        login = await client.post(
            "/api/auth/login",
            json={"email": campus.student.email, "password": TEST_PASSWORD},
        )
        assert login.status_code == 200
        token = login.json()["data"]["token"]

        me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert me.status_code == 200
        assert me.json()["data"]["name"] == "Asha Verma"
        assert me.json()["data"]["role"] == "student"

    async def test_wrong_password(self, client: httpx.AsyncClient, campus):
        response = await client.post(
            "/api/auth/login",
            json={"email": campus.student.email, "password": "wrong-password"},
        )

        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Invalid credentials"}

    async def test_missing_token(self, client: httpx.AsyncClient):
        response = await client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.json()["success"] is False

    async def test_garbage_token(self, client: httpx.AsyncClient):
        response = await client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid or expired token"

    async def test_health(self, client: httpx.AsyncClient):
        response = await client.get("/health")
        assert response.json()["status"] == "healthy"


# =============================================================================
# TEST: FILING AND TRACKING
# =============================================================================


class TestFilingApi:

    async def test_file_and_track(self, client: httpx.AsyncClient, campus):
        response = await client.post("/api/complaints", json=COMPLAINT, headers=bearer(campus.student))

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert len(data["trackingId"]) == 12
        assert data["status"] == "pending"
        assert str(campus.student.id) not in response.text
        assert campus.student.name not in response.text

        tracked = await client.get(
            f"/api/complaints/track/{data['trackingId']}", headers=bearer(campus.student)
        )
        assert tracked.status_code == 200
        assert tracked.json()["data"]["title"] == COMPLAINT["title"]
        assert "adminNotes" not in tracked.json()["data"]

    async def test_staff_cannot_file(self, client: httpx.AsyncClient, campus):
        response = await client.post("/api/complaints", json=COMPLAINT, headers=bearer(campus.admin))
        assert response.status_code == 403

    async def test_invalid_body(self, client: httpx.AsyncClient, campus):
        response = await client.post(
            "/api/complaints",
            json={**COMPLAINT, "title": "Hey", "category": "gossip"},
            headers=bearer(campus.student),
        )

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Invalid request"
        assert {error["field"] for error in body["errors"]} >= {"title", "category"}

    async def test_other_student_gets_403(
        self, client: httpx.AsyncClient, session: AsyncSession, campus
    ):
        other = await create_user(session, campus.org, UserRole.STUDENT, "Lena Park")
        await session.commit()
        tracking_id = await file_complaint(client, campus.student)

        response = await client.get(f"/api/complaints/track/{tracking_id}", headers=bearer(other))

        assert response.status_code == 403
        assert response.json()["message"] == "Access denied. This tracking ID does not belong to you."

    async def test_malformed_tracking_id(self, client: httpx.AsyncClient, campus):
        response = await client.get("/api/complaints/track/short", headers=bearer(campus.student))

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid tracking ID format"

    async def test_unknown_tracking_id(self, client: httpx.AsyncClient, campus):
        response = await client.get(
            "/api/complaints/track/ZZZZZZZZZZZZ", headers=bearer(campus.student)
        )
        assert response.status_code == 404

    async def test_my_complaints(self, client: httpx.AsyncClient, campus):
        first = await file_complaint(client, campus.student)
        second = await file_complaint(client, campus.student, category="safety")

        response = await client.get("/api/complaints/my-complaints", headers=bearer(campus.student))

        assert response.status_code == 200
        assert {c["trackingId"] for c in response.json()["data"]} == {first, second}

    async def test_suspended_tenant_cannot_file(
        self, client: httpx.AsyncClient, session: AsyncSession
    ):
        org = await create_org(session, "Dormant College", OrganizationStatus.SUSPENDED)
        student = await create_user(session, org, UserRole.STUDENT, "Asha Verma")
        await session.commit()

        response = await client.post("/api/complaints", json=COMPLAINT, headers=bearer(student))

        assert response.status_code == 403
        assert response.json()["message"] == "Organization is suspended"


# =============================================================================
# TEST: STAFF
# =============================================================================


class TestStaffApi:

    async def test_list_paginates_and_hides_notes(self, client: httpx.AsyncClient, campus):
        for category in ("safety", "safety", "infrastructure"):
            await file_complaint(client, campus.student, category=category)

        response = await client.get(
            "/api/complaints",
            params={"category": "safety", "page": 1, "page_size": 1},
            headers=bearer(campus.committee),
        )

        assert response.status_code == 200
        page = response.json()["data"]
        assert page["total"] == 2
        assert page["totalPages"] == 2
        assert len(page["items"]) == 1
        assert "adminNotes" not in page["items"][0]
        assert "description" not in page["items"][0]

    async def test_second_page(self, client: httpx.AsyncClient, campus):
        first = await file_complaint(client, campus.student, title="Leaking roof in hostel B")
        await file_complaint(client, campus.student, title="Broken lab equipment again")

        response = await client.get(
            "/api/complaints",
            params={"page": 2, "page_size": 1},
            headers=bearer(campus.committee),
        )

        page = response.json()["data"]
        assert page["page"] == 2
        assert page["pageSize"] == 1
        assert [item["trackingId"] for item in page["items"]] == [first]

    @pytest.mark.parametrize("params", [{"page": 0}, {"page_size": 101}, {"page_size": 0}])
    async def test_page_bounds_are_validated(self, client: httpx.AsyncClient, campus, params):
        response = await client.get(
            "/api/complaints", params=params, headers=bearer(campus.committee)
        )

        assert response.status_code == 400
        assert response.json()["success"] is False

    async def test_student_cannot_list(self, client: httpx.AsyncClient, campus):
        response = await client.get("/api/complaints", headers=bearer(campus.student))
        assert response.status_code == 403

    async def test_status_priority_and_notes(self, client: httpx.AsyncClient, campus):
        tracking_id = await file_complaint(client, campus.student)
        headers = bearer(campus.committee)

        status = await client.put(
            f"/api/complaints/{tracking_id}/status",
            json={"status": "in-progress", "comment": "Facilities notified"},
            headers=headers,
        )
        assert status.status_code == 200
        assert status.json()["data"]["status"] == "in-progress"
        history = status.json()["data"]["statusHistory"]
        assert history[0]["previousStatus"] == "pending"

        priority = await client.put(
            f"/api/complaints/{tracking_id}/priority", json={"priority": "high"}, headers=headers
        )
        assert priority.json()["data"]["priority"] == "high"

        note = await client.post(
            f"/api/complaints/{tracking_id}/notes", json={"note": "Called the lab"}, headers=headers
        )
        assert note.json()["data"]["adminNotes"][0]["note"] == "Called the lab"

        tracked = await client.get(
            f"/api/complaints/track/{tracking_id}", headers=bearer(campus.student)
        )
        assert tracked.json()["data"]["status"] == "in-progress"
        assert "Called the lab" not in tracked.text

    async def test_student_cannot_change_status(self, client: httpx.AsyncClient, campus):
        tracking_id = await file_complaint(client, campus.student)

        response = await client.put(
            f"/api/complaints/{tracking_id}/status",
            json={"status": "closed"},
            headers=bearer(campus.student),
        )

        assert response.status_code == 403

    async def test_other_tenant_gets_404(
        self, client: httpx.AsyncClient, session: AsyncSession, campus
    ):
        tracking_id = await file_complaint(client, campus.student)
        elsewhere = await create_org(session, "Hillcrest University")
        outsider = await create_user(session, elsewhere, UserRole.ADMIN, "Mira Kovacs")
        await session.commit()

        response = await client.get(f"/api/complaints/{tracking_id}", headers=bearer(outsider))

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Complaint not found"}


# =============================================================================
# TEST: IDENTITY REVEAL
# =============================================================================


class TestRevealApi:

    async def test_admin_reveal_and_access_log(self, client: httpx.AsyncClient, campus):
        tracking_id = await file_complaint(client, campus.student)

        response = await client.post(
            f"/api/complaints/{tracking_id}/reveal-identity",
            json=REASON,
            headers=bearer(campus.admin),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["student"]["name"] == "Asha Verma"
        assert data["student"]["studentId"] == "S-1024"
        assert data["revealedBy"] == "Dean Okafor"
        assert data["reason"] == REASON["reason"]

        detail = await client.get(f"/api/complaints/{tracking_id}", headers=bearer(campus.admin))
        assert detail.json()["data"]["identityRevealed"] is True

        log = await client.get(
            f"/api/complaints/{tracking_id}/access-log", headers=bearer(campus.admin)
        )
        assert log.status_code == 200
        entries = log.json()["data"]
        assert len(entries) == 1
        assert entries[0]["outcome"] == "disclosed"
        assert entries[0]["sourceAddress"] == "127.0.0.1"

    async def test_forwarded_header_does_not_choose_logged_address(self, app, campus):
        """The logged address is the connection peer, whatever the caller claims."""
        transport = httpx.ASGITransport(app=app, client=("198.51.100.4", 52100))
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as peer:
            tracking_id = await file_complaint(peer, campus.student)
            response = await peer.post(
                f"/api/complaints/{tracking_id}/reveal-identity",
                json=REASON,
                headers={**bearer(campus.admin), "X-Forwarded-For": "203.0.113.77, 10.0.0.1"},
            )
            assert response.status_code == 200

            log = await peer.get(
                f"/api/complaints/{tracking_id}/access-log", headers=bearer(campus.admin)
            )

        assert [entry["sourceAddress"] for entry in log.json()["data"]] == ["198.51.100.4"]

    async def test_committee_admin_is_refused(self, client: httpx.AsyncClient, campus):
        tracking_id = await file_complaint(client, campus.student)

        response = await client.post(
            f"/api/complaints/{tracking_id}/reveal-identity",
            json=REASON,
            headers=bearer(campus.committee),
        )

        assert response.status_code == 403
        assert response.json()["message"] == "Only full administrators can reveal student identity"

    async def test_committee_admin_cannot_read_access_log(self, client: httpx.AsyncClient, campus):
        tracking_id = await file_complaint(client, campus.student)

        response = await client.get(
            f"/api/complaints/{tracking_id}/access-log", headers=bearer(campus.committee)
        )

        assert response.status_code == 403

    async def test_short_reason(self, client: httpx.AsyncClient, campus):
        tracking_id = await file_complaint(client, campus.student)

        response = await client.post(
            f"/api/complaints/{tracking_id}/reveal-identity",
            json={"reason": "curious"},
            headers=bearer(campus.admin),
        )

        assert response.status_code == 400
        assert "minimum 10 characters" in response.json()["message"]

    async def test_severed_link_is_logged(self, client: httpx.AsyncClient, mappings, campus):
        tracking_id = await file_complaint(client, campus.student)
        await mappings.delete_mapping(tracking_id)

        response = await client.post(
            f"/api/complaints/{tracking_id}/reveal-identity",
            json=REASON,
            headers=bearer(campus.admin),
        )
        assert response.status_code == 404

        log = await client.get(
            f"/api/complaints/{tracking_id}/access-log", headers=bearer(campus.admin)
        )
        assert [entry["outcome"] for entry in log.json()["data"]] == ["mapping_missing"]


# =============================================================================
# TEST: CHAT OVER REST
# =============================================================================


class TestChatApi:

    async def test_student_and_admin_exchange_messages(self, client: httpx.AsyncClient, campus):
        tracking_id = await file_complaint(client, campus.student)

        sent = await client.post(
            f"/api/chat/{tracking_id}/messages",
            json={"trackingId": tracking_id, "message": "Any update?"},
            headers=bearer(campus.student),
        )
        assert sent.status_code == 201
        assert sent.json()["data"]["senderRole"] == "student"
        assert sent.json()["data"]["senderName"] is None

        history = await client.get(f"/api/chat/{tracking_id}/messages", headers=bearer(campus.admin))
        assert history.status_code == 200
        data = history.json()["data"]
        assert data["unreadCount"] == 1
        assert [m["message"] for m in data["messages"]] == ["Any update?"]

        again = await client.get(f"/api/chat/{tracking_id}/messages", headers=bearer(campus.admin))
        assert again.json()["data"]["unreadCount"] == 0

    async def test_staff_messages_are_signed(self, client: httpx.AsyncClient, campus):
        tracking_id = await file_complaint(client, campus.student)

        await client.post(
            f"/api/chat/{tracking_id}/messages",
            json={"trackingId": tracking_id, "message": "We are on it"},
            headers=bearer(campus.committee),
        )
        history = await client.get(
            f"/api/chat/{tracking_id}/messages", headers=bearer(campus.student)
        )

        message = history.json()["data"]["messages"][0]
        assert message["senderRole"] == "committee-admin"
        assert message["senderName"] == "Ravi Menon"

    async def test_other_student_cannot_read(
        self, client: httpx.AsyncClient, session: AsyncSession, campus
    ):
        other = await create_user(session, campus.org, UserRole.STUDENT, "Lena Park")
        await session.commit()
        tracking_id = await file_complaint(client, campus.student)

        response = await client.get(f"/api/chat/{tracking_id}/messages", headers=bearer(other))

        assert response.status_code == 403

    @pytest.mark.parametrize("text", ["", "x" * 2001])
    async def test_invalid_message(self, client: httpx.AsyncClient, campus, text):
        tracking_id = await file_complaint(client, campus.student)

        response = await client.post(
            f"/api/chat/{tracking_id}/messages",
            json={"trackingId": tracking_id, "message": text},
            headers=bearer(campus.student),
        )

        assert response.status_code == 400
