"""
HTTP-level tests: envelopes, status codes and the auth flow.
"""
import pytest

from tests.conftest import PASSWORD, bearer, login

API = "/api/v1"

COMPETITION = {
    "type": "competition",
    "title": "Regional Coding 2025",
    "details": {"eventDate": "2025-09-01", "competitionLevel": "regional", "rank": 1},
}


@pytest.fixture
async def tokens(client):
    """Access tokens for every seeded user."""
    return {name: (await login(client, name))["token"] for name in ("s1", "s2", "a1", "a2", "admin")}


async def create_achievement(client, token, body=None):
    response = await client.post(f"{API}/achievements", json=body or COMPETITION, headers=bearer(token))
    assert response.status_code == 201, response.text
    return response.json()["data"]


# =============================================================================
# Auth
# =============================================================================

class TestAuth:
    async def test_login(self, client):
        data = await login(client, "s1")

        assert data["token"]
        assert data["refreshToken"]
        user = data["user"]
        assert user["id"] == "u-s1"
        assert user["username"] == "s1"
        assert user["fullName"] == "Siti Aminah"
        assert user["role"] == "student"
        assert "achievement:create" in user["permissions"]

    async def test_wrong_password(self, client):
        response = await client.post(f"{API}/auth/login", json={"username": "s1", "password": "nope"})

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        body = response.json()
        assert body["status"] == "error"
        assert body["error"] == "unauthenticated"

    async def test_unknown_user(self, client):
        response = await client.post(f"{API}/auth/login", json={"username": "ghost", "password": PASSWORD})
        assert response.status_code == 401

    async def test_missing_credential(self, client):
        response = await client.get(f"{API}/achievements")
        assert response.status_code == 401
        assert response.json()["error"] == "unauthenticated"

    async def test_profile(self, client, tokens):
        response = await client.get(f"{API}/auth/profile", headers=bearer(tokens["a1"]))
        assert response.status_code == 200
        assert response.json()["data"]["role"] == "advisor"

    async def test_logout_revokes_only_that_token(self, client):
        first = (await login(client, "s1"))["token"]
        second = (await login(client, "s1"))["token"]

        response = await client.post(f"{API}/auth/logout", headers=bearer(first))
        assert response.status_code == 200

        revoked = await client.get(f"{API}/auth/profile", headers=bearer(first))
        assert revoked.status_code == 401
        still_valid = await client.get(f"{API}/auth/profile", headers=bearer(second))
        assert still_valid.status_code == 200

    async def test_refresh(self, client):
        data = await login(client, "s2")

        response = await client.post(f"{API}/auth/refresh", json={"refreshToken": data["refreshToken"]})

        assert response.status_code == 200
        fresh = response.json()["data"]["token"]
        profile = await client.get(f"{API}/auth/profile", headers=bearer(fresh))
        assert profile.json()["data"]["id"] == "u-s2"

    async def test_refresh_from_bearer_header(self, client):
        data = await login(client, "s2")
        response = await client.post(f"{API}/auth/refresh", headers=bearer(data["refreshToken"]))
        assert response.status_code == 200

    async def test_token_kinds_not_interchangeable(self, client):
        data = await login(client, "s1")

        as_access = await client.get(f"{API}/achievements", headers=bearer(data["refreshToken"]))
        assert as_access.status_code == 401

        as_refresh = await client.post(f"{API}/auth/refresh", json={"refreshToken": data["token"]})
        assert as_refresh.status_code == 401


# =============================================================================
# Achievements
# =============================================================================

class TestAchievements:
    async def test_happy_path(self, client, tokens):
        created = await create_achievement(client, tokens["s1"])
        assert created["status"] == "draft"
        achievement_id = created["id"]

        submitted = await client.post(f"{API}/achievements/{achievement_id}/submit", headers=bearer(tokens["s1"]))
        assert submitted.status_code == 200
        assert submitted.json()["data"]["status"] == "submitted"
        assert submitted.json()["data"]["submittedAt"]

        verified = await client.post(f"{API}/achievements/{achievement_id}/verify", headers=bearer(tokens["a1"]))
        assert verified.status_code == 200
        data = verified.json()["data"]
        assert data["status"] == "verified"
        assert data["verifiedBy"] == "ap1"
        assert data["verifiedAt"]

        view = (await client.get(f"{API}/achievements/{achievement_id}", headers=bearer(tokens["s1"]))).json()["data"]
        assert view["details"]["eventDate"] == "2025-09-01"
        assert view["details"]["competitionLevel"] == "regional"
        assert view["rejectionNote"] is None

        history = await client.get(f"{API}/achievements/{achievement_id}/history", headers=bearer(tokens["s1"]))
        assert [h["action"] for h in history.json()["data"]] == ["create", "submit", "verify"]

    async def test_other_advisor_forbidden(self, client, tokens):
        created = await create_achievement(client, tokens["s1"])
        await client.post(f"{API}/achievements/{created['id']}/submit", headers=bearer(tokens["s1"]))

        response = await client.post(f"{API}/achievements/{created['id']}/verify", headers=bearer(tokens["a2"]))

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    async def test_reject_requires_note(self, client, tokens):
        created = await create_achievement(client, tokens["s1"])
        await client.post(f"{API}/achievements/{created['id']}/submit", headers=bearer(tokens["s1"]))
        url = f"{API}/achievements/{created['id']}/reject"

        missing = await client.post(url, headers=bearer(tokens["a1"]))
        assert missing.status_code == 400
        assert missing.json()["error"] == "validation-error"

        rejected = await client.post(url, json={"rejectionNote": "scan unreadable"}, headers=bearer(tokens["a1"]))
        assert rejected.status_code == 200
        assert rejected.json()["data"]["rejectionNote"] == "scan unreadable"

    async def test_repeat_submit(self, client, tokens):
        created = await create_achievement(client, tokens["s1"])
        url = f"{API}/achievements/{created['id']}/submit"
        await client.post(url, headers=bearer(tokens["s1"]))

        again = await client.post(url, headers=bearer(tokens["s1"]))

        assert again.status_code == 400
        assert again.json()["error"] == "invalid-state"

    async def test_malformed_event_date(self, client, tokens):
        body = dict(COMPETITION, details={"eventDate": "2025-9-1"})
        response = await client.post(f"{API}/achievements", json=body, headers=bearer(tokens["s1"]))
        assert response.status_code == 400
        assert response.json()["error"] == "validation-error"

    async def test_request_validation(self, client, tokens):
        response = await client.post(
            f"{API}/achievements", json={"type": "competition", "points": -1}, headers=bearer(tokens["s1"])
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation-error"
        assert {e["field"] for e in body["errors"]} >= {"title", "points"}

    async def test_delete_guard_and_admin_override(self, client, tokens):
        created = await create_achievement(client, tokens["s1"])
        url = f"{API}/achievements/{created['id']}"
        await client.post(f"{url}/submit", headers=bearer(tokens["s1"]))

        denied = await client.delete(url, headers=bearer(tokens["s1"]))
        assert denied.status_code == 403

        forced = await client.delete(url, headers=bearer(tokens["admin"]))
        assert forced.status_code == 200

        gone = await client.get(url, headers=bearer(tokens["s1"]))
        assert gone.status_code == 404
        assert gone.json()["error"] == "not-found"

    async def test_missing_detail_is_conflict(self, client, tokens, details):
        created = await create_achievement(client, tokens["s1"])
        del details.docs[created["detailId"]]

        response = await client.get(f"{API}/achievements/{created['id']}", headers=bearer(tokens["s1"]))

        assert response.status_code == 409
        assert response.json()["error"] == "inconsistent"
        assert response.json()["retryable"] is True

    async def test_update_draft(self, client, tokens):
        created = await create_achievement(client, tokens["s1"])
        response = await client.put(
            f"{API}/achievements/{created['id']}",
            json={"title": "National Coding 2025", "tags": ["coding"]},
            headers=bearer(tokens["s1"]),
        )
        assert response.status_code == 200
        assert response.json()["data"]["title"] == "National Coding 2025"
        assert response.json()["data"]["tags"] == ["coding"]

    async def test_upload_attachment(self, client, tokens):
        created = await create_achievement(client, tokens["s1"])

        response = await client.post(
            f"{API}/achievements/{created['id']}/attachments",
            files={"file": ("certificate.pdf", b"%PDF-1.4 test", "application/pdf")},
            headers=bearer(tokens["s1"]),
        )

        assert response.status_code == 201
        attachments = response.json()["data"]["attachments"]
        assert attachments[0]["fileName"] == "certificate.pdf"
        assert attachments[0]["fileUrl"].startswith("/uploads/")

    async def test_listing_scope(self, client, tokens):
        mine = await create_achievement(client, tokens["s1"])

        own = await client.get(f"{API}/achievements", headers=bearer(tokens["s1"]))
        assert [a["id"] for a in own.json()["data"]] == [mine["id"]]
        other = await client.get(f"{API}/achievements", headers=bearer(tokens["s2"]))
        assert other.json()["data"] == []
        advisor = await client.get(f"{API}/students/sp1/achievements", headers=bearer(tokens["a1"]))
        assert [a["id"] for a in advisor.json()["data"]] == [mine["id"]]


# =============================================================================
# Students, advisors, reports, users
# =============================================================================

class TestDirectory:
    async def test_students_scoped(self, client, tokens):
        response = await client.get(f"{API}/students", headers=bearer(tokens["a1"]))
        assert [s["id"] for s in response.json()["data"]] == ["sp1"]

        everyone = await client.get(f"{API}/students", headers=bearer(tokens["admin"]))
        assert [s["studentNumber"] for s in everyone.json()["data"]] == ["2021001", "2021002"]

    async def test_student_detail_forbidden_for_stranger(self, client, tokens):
        response = await client.get(f"{API}/students/sp1", headers=bearer(tokens["s2"]))
        assert response.status_code == 403

    async def test_change_advisor(self, client, tokens):
        response = await client.put(
            f"{API}/students/sp1/advisor", json={"advisorId": "ap2"}, headers=bearer(tokens["admin"])
        )
        assert response.status_code == 200
        assert response.json()["data"]["advisorId"] == "ap2"

        denied = await client.put(
            f"{API}/students/sp1/advisor", json={"advisorId": "ap2"}, headers=bearer(tokens["a1"])
        )
        assert denied.status_code == 403

        unknown = await client.put(
            f"{API}/students/sp1/advisor", json={"advisorId": "ap-missing"}, headers=bearer(tokens["admin"])
        )
        assert unknown.status_code == 404

    async def test_advisors(self, client, tokens):
        own = await client.get(f"{API}/advisors", headers=bearer(tokens["s1"]))
        assert [a["id"] for a in own.json()["data"]] == ["ap1"]

        advisees = await client.get(f"{API}/advisors/ap1/advisees", headers=bearer(tokens["a1"]))
        assert [s["id"] for s in advisees.json()["data"]] == ["sp1"]

        others = await client.get(f"{API}/advisors/ap2/advisees", headers=bearer(tokens["a1"]))
        assert others.status_code == 403

    async def test_statistics(self, client, tokens):
        await create_achievement(client, tokens["s1"])

        response = await client.get(f"{API}/reports/statistics", headers=bearer(tokens["admin"]))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["scope"] == "all"
        assert data["statusHistogram"]["draft"] == 1
        assert data["typeDistribution"] == {"competition": 1}
        assert len(data["monthlyTrend"]) == 12

    async def test_student_report(self, client, tokens):
        await create_achievement(client, tokens["s1"])
        response = await client.get(f"{API}/reports/student/sp1", headers=bearer(tokens["a1"]))
        assert response.status_code == 200
        assert response.json()["data"]["student"]["id"] == "sp1"
        assert len(response.json()["data"]["achievements"]) == 1

    async def test_user_admin(self, client, tokens):
        body = {
            "username": "s3",
            "email": "s3@university.ac.id",
            "password": "a-long-password",
            "fullName": "Dewi Lestari",
            "role": "mahasiswa",
            "studentProfile": {"studentNumber": "2021003", "advisorId": "ap1"},
        }
        created = await client.post(f"{API}/users", json=body, headers=bearer(tokens["admin"]))
        assert created.status_code == 201, created.text
        assert created.json()["data"]["role"] == "student"
        assert created.json()["data"]["studentProfileId"]

        response = await client.post(
            f"{API}/auth/login", json={"username": "s3", "password": "a-long-password"}
        )
        assert response.status_code == 200

        denied = await client.get(f"{API}/users", headers=bearer(tokens["s1"]))
        assert denied.status_code == 403

    async def test_deactivated_user_cannot_login(self, client, tokens):
        response = await client.delete(f"{API}/users/u-s2", headers=bearer(tokens["admin"]))
        assert response.status_code == 200
        assert response.json()["data"]["isActive"] is False

        login_response = await client.post(f"{API}/auth/login", json={"username": "s2", "password": PASSWORD})
        assert login_response.status_code == 403


async def test_health(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "success"
