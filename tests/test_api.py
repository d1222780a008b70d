"""HTTP-level tests for the Cozy Connect API using FastAPI's TestClient."""
import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

from app.errors import StorageUnavailable
from app.services.match_service import MatchFields
from app.services.profile_gateway import ProfileFields
from tests.conftest import FEEDBACK_TABLE, MATCHES_TABLE, PROFILES_TABLE


def swipe(client, target):
    return client.post("/api/matches", json={"swipedProfileId": target})


class TestMatchesFlow:

    def test_swipe_accept_list_and_delete(self, client, auth):
        first = swipe(client, "p2")
        assert first.status_code == 200
        body = first.json()
        assert body == {
            "success": True,
            "isMatch": False,
            "matchId": body["matchId"],
            "alreadySwiped": False,
        }
        match_id = body["matchId"]

        # Bob sees an incoming request from Alice.
        auth["email"] = "bob@example.com"
        listing = client.get("/api/matches").json()
        assert listing["success"] is True
        [item] = listing["matches"]
        assert item["id"] == "p1"
        assert item["name"] == "Alice"
        assert item["matchId"] == match_id
        assert item["matchStatus"] == "pending"
        assert item["isIncoming"] is True
        assert "verificationCode" not in item

        accepted = client.put("/api/matches", json={"matchId": match_id, "status": "accepted"})
        assert accepted.status_code == 200
        assert accepted.json()["match"] == {
            "id": match_id,
            "swiper": "p1",
            "swiped": "p2",
            "status": "accepted",
        }

        # Alice sees the connection as outgoing.
        auth["email"] = "alice@example.com"
        [item] = client.get("/api/matches").json()["matches"]
        assert item["id"] == "p2"
        assert item["matchStatus"] == "accepted"
        assert item["isIncoming"] is False

        deleted = client.request("DELETE", "/api/matches", json={"matchId": match_id})
        assert deleted.status_code == 200
        assert deleted.json() == {"success": True}
        assert client.get("/api/matches").json()["matches"] == []

    def test_duplicate_pair_records_show_other_party_once(self, client, store):
        store.seed(MATCHES_TABLE, "recOld", {MatchFields.SWIPER: "p1", MatchFields.SWIPED: "p2", MatchFields.STATUS: "pending"})
        store.seed(MATCHES_TABLE, "recWon", {MatchFields.SWIPER: "p2", MatchFields.SWIPED: "p1", MatchFields.STATUS: "accepted"})

        [item] = client.get("/api/matches").json()["matches"]

        assert item["id"] == "p2"
        assert item["matchId"] == "recWon"
        assert item["matchStatus"] == "accepted"

    def test_reciprocal_swipe_is_a_match(self, client, auth):
        match_id = swipe(client, "p2").json()["matchId"]
        auth["email"] = "bob@example.com"

        body = swipe(client, "p1").json()

        assert body["isMatch"] is True
        assert body["matchId"] == match_id

    def test_repeat_swipe_reports_already_swiped(self, client):
        swipe(client, "p2")
        body = swipe(client, "p2").json()
        assert body["alreadySwiped"] is True
        assert body["isMatch"] is False

    def test_swipe_on_unknown_profile(self, client):
        response = swipe(client, "recDoesNotExist")
        assert response.status_code == 404
        assert response.json()["errorType"] == "NO_PROFILE"

    def test_self_swipe_rejected(self, client):
        response = swipe(client, "p1")
        assert response.status_code == 400
        assert response.json()["errorType"] == "INVALID_SWIPE"

    def test_swiper_cannot_accept_own_request(self, client):
        match_id = swipe(client, "p2").json()["matchId"]
        response = client.put("/api/matches", json={"matchId": match_id, "status": "accepted"})
        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": response.json()["error"],
            "errorType": "NO_MATCH",
        }

    def test_invalid_status(self, client, auth):
        match_id = swipe(client, "p2").json()["matchId"]
        auth["email"] = "bob@example.com"
        response = client.put("/api/matches", json={"matchId": match_id, "status": "maybe"})
        assert response.status_code == 400
        assert response.json()["errorType"] == "INVALID_STATUS"

    def test_outsider_cannot_delete(self, client, store, auth):
        match_id = swipe(client, "p2").json()["matchId"]
        store.seed(PROFILES_TABLE, "p9", {ProfileFields.NAME: "Mallory", ProfileFields.LINKING_EMAIL: "m@example.com"})
        auth["email"] = "m@example.com"

        response = client.request("DELETE", "/api/matches", json={"matchId": match_id})

        assert response.status_code == 404
        assert response.json()["errorType"] == "NO_MATCH"

    def test_missing_body_field_is_validation_error(self, client):
        response = client.post("/api/matches", json={})
        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["errorType"] == "INVALID_REQUEST"
        assert body["details"]


class TestAuthentication:

    def test_signed_out_caller_rejected(self, client, auth):
        auth["email"] = None
        response = client.get("/api/matches")
        assert response.status_code == 401
        assert response.json()["errorType"] == "NOT_AUTHENTICATED"

    def test_caller_without_profile(self, client, auth):
        auth["email"] = "newcomer@example.com"
        response = client.get("/api/matches")
        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": "User profile not found",
            "errorType": "NO_PROFILE",
        }

    def test_real_dependency_rejects_missing_bearer(self, client):
        from app.api.deps import get_current_email, get_optional_email
        from app.main import app

        app.dependency_overrides.pop(get_optional_email)
        app.dependency_overrides.pop(get_current_email)
        app.state.identity = SimpleNamespace(verify=AsyncMock(return_value="alice@example.com"))

        assert client.get("/api/matches").status_code == 401
        response = client.get("/api/matches", headers={"Authorization": "Bearer token"})
        assert response.status_code == 200
        app.state.identity.verify.assert_awaited_with("token")


class TestProfileEndpoints:

    def _create_payload(self):
        return {
            "name": "Frank",
            "shortIntro": "Builder of things",
            "categories": ["Design"],
            "lookingFor": "Collaborators",
            "canOffer": "Figma help",
            "picture": {"url": "https://img.example.com/frank.png", "filename": "frank.png"},
        }

    def test_get_own_profile(self, client):
        for path in ("/api/profile", "/api/profile/me"):
            body = client.get(path).json()
            assert body["success"] is True
            assert body["profile"]["id"] == "p1"
            assert body["profile"]["cozyConnectGmail"] == "alice@example.com"

    def test_create_then_conflict(self, client, auth):
        auth["email"] = "frank@example.com"
        created = client.post("/api/profile", json=self._create_payload())
        assert created.status_code == 201
        assert created.json()["profile"]["name"] == "Frank"

        again = client.post("/api/profile", json=self._create_payload())
        assert again.status_code == 409
        assert again.json()["errorType"] == "PROFILE_EXISTS"

    def test_create_requires_categories(self, client, auth):
        auth["email"] = "frank@example.com"
        payload = {**self._create_payload(), "categories": []}
        assert client.post("/api/profile", json=payload).status_code == 422

    def test_partial_update(self, client):
        response = client.put("/api/profile", json={"companyTitle": "CTO", "openToWork": "Yes"})
        assert response.status_code == 200
        profile = response.json()["profile"]
        assert profile["companyTitle"] == "CTO"
        assert profile["openToWork"] == "Yes"
        assert profile["name"] == "Alice"

    def test_empty_update_rejected(self, client):
        response = client.put("/api/profile", json={})
        assert response.status_code == 400
        assert response.json()["errorType"] == "INVALID_REQUEST"

    def test_check_finds_profile(self, client):
        response = client.get("/api/profile/check")
        assert response.status_code == 200
        assert response.json()["profile"]["id"] == "p1"

    def test_check_miss(self, client, auth):
        auth["email"] = "newcomer@example.com"
        fast = SimpleNamespace(PROFILE_CHECK_ATTEMPTS=2, PROFILE_CHECK_DELAY_SECONDS=0)
        with patch("app.api.profile.get_settings", return_value=fast):
            response = client.get("/api/profile/check")
        assert response.status_code == 404
        assert response.json()["errorType"] == "NO_PROFILE"


class TestLinkingEndpoints:

    def test_request_code_then_link(self, client, auth, email_service):
        auth["email"] = "carol@example.com"
        response = client.post("/api/profile/request-code", json={"name": "Carol"})
        assert response.status_code == 200
        assert response.json()["success"] is True
        code = email_service.sent[-1]["code"]

        linked = client.post("/api/profile/link", json={"name": "Carol", "verificationCode": code})
        assert linked.status_code == 200
        assert linked.json()["profile"]["cozyConnectGmail"] == "carol@example.com"
        assert client.get("/api/profile").json()["profile"]["id"] == "p3"

    def test_wrong_code(self, client, auth):
        auth["email"] = "carol@example.com"
        response = client.post("/api/profile/link", json={"name": "Carol", "verificationCode": "000000"})
        assert response.status_code == 400
        assert response.json()["errorType"] == "INVALID_CODE"


class TestBrowseFeed:

    def test_excludes_caller_and_codes(self, client):
        body = client.get("/api/profiles").json()
        ids = {p["id"] for p in body["profiles"]}
        assert ids == {"p2", "p3"}
        assert all("verificationCode" not in p for p in body["profiles"])

    def test_anonymous_browse(self, client, auth):
        auth["email"] = None
        body = client.get("/api/profiles").json()
        assert {p["id"] for p in body["profiles"]} == {"p1", "p2", "p3"}


class TestUpload:

    def test_upload_success(self, client):
        result = {
            "url": "https://storage.googleapis.com/bucket/profile-pictures/1-ab.png",
            "key": "profile-pictures/1-ab.png",
            "filename": "me.png",
        }
        with patch("app.api.upload.upload_profile_picture", new=AsyncMock(return_value=result)) as upload:
            response = client.post("/api/upload", files={"file": ("me.png", b"\x89PNG data", "image/png")})

        assert response.status_code == 200
        assert response.json() == {**result, "success": True}
        upload.assert_awaited_once_with(b"\x89PNG data", "me.png", "image/png")

    def test_wrong_content_type(self, client):
        response = client.post("/api/upload", files={"file": ("notes.txt", b"hello", "text/plain")})
        assert response.status_code == 400
        assert response.json()["errorType"] == "UPLOAD_REJECTED"

    def test_storage_not_configured(self, client):
        failing = AsyncMock(side_effect=StorageUnavailable("GCS_BUCKET_NAME is not configured"))
        with patch("app.api.upload.upload_profile_picture", new=failing):
            response = client.post("/api/upload", files={"file": ("me.png", b"data", "image/png")})
        assert response.status_code == 500
        assert response.json()["errorType"] == "STORAGE_UNAVAILABLE"


class TestFeedbackAndHealth:

    def test_feedback_without_sign_in(self, client, auth, store):
        auth["email"] = None
        response = client.post("/api/feedback", json={"feedback": "Love it", "rating": 5})
        assert response.status_code == 200
        [record] = asyncio.run(store.select(FEEDBACK_TABLE))
        row = record.fields
        assert row["Feedback"] == "Love it"
        assert row["Rating"] == 5

    def test_feedback_rating_bounds(self, client):
        response = client.post("/api/feedback", json={"feedback": "Meh", "rating": 6})
        assert response.status_code == 422

    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "healthy"}
        deep = client.get("/api/health/deep").json()
        assert deep["status"] == "healthy"
        assert deep["backend"] == "memory"
