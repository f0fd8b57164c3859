"""HTTP contract tests for the metered action endpoints."""

import pytest

from brandforge.api import health
from brandforge.core.database import check_connection


def _headers(user_id="user-1"):
    return {"X-User-Id": user_id}


class TestImageEndpoint:
    def test_success_shape(self, api_client, seed_team, provider, images):
        seed_team(image_credits=2)
        provider.succeed(images["png"])

        resp = api_client.post(
            "/v1/images/generate",
            headers=_headers(),
            json={"brief": {"description": "A coffee cup on a wooden table", "platform": "Instagram"}},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["imageUrl"].startswith("data:image/png;base64,")
        assert body["attemptsUsed"] == 1
        assert body["remainingBalance"] == 1
        assert body["actionId"]
        assert body["request_id"] == resp.headers["x-request-id"]

    def test_missing_identity_is_401(self, api_client):
        resp = api_client.post("/v1/images/generate", json={"brief": {"description": "x"}})
        assert resp.status_code == 401
        assert resp.json()["code"] == "unauthorized"

    def test_user_without_team_is_401(self, api_client):
        resp = api_client.post("/v1/images/generate", headers=_headers("ghost"), json={"brief": {"description": "x"}})
        assert resp.status_code == 401

    def test_insufficient_credits_is_402(self, api_client, seed_team, provider):
        seed_team(image_credits=0)
        resp = api_client.post("/v1/images/generate", headers=_headers(), json={"brief": {"description": "x"}})

        assert resp.status_code == 402
        body = resp.json()
        assert body["code"] == "insufficient_credits"
        assert "Purchase credits" in body["error"]
        assert provider.requests == []

    def test_invalid_brief_is_400(self, api_client, seed_team):
        seed_team(image_credits=1)
        resp = api_client.post("/v1/images/generate", headers=_headers(), json={"brief": {"description": ""}})
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"

    def test_missing_brief_is_400(self, api_client, seed_team):
        seed_team(image_credits=1)
        resp = api_client.post("/v1/images/generate", headers=_headers(), json={})
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"

    @pytest.mark.parametrize("status,expected_status,expected_code", [
        (429, 429, "rate_limited"),
        (402, 402, "upstream_quota_exhausted"),
        (400, 400, "asset_processing_error"),
        (500, 500, "generation_failed"),
    ])
    def test_provider_errors_are_mapped(self, api_client, seed_team, provider, status, expected_status, expected_code):
        seed_team(image_credits=1)
        provider.queue((status, {"error": {"message": "internal provider detail"}}))

        resp = api_client.post("/v1/images/generate", headers=_headers(), json={"brief": {"description": "x"}})

        assert resp.status_code == expected_status
        body = resp.json()
        assert body["code"] == expected_code
        assert "internal provider detail" not in resp.text
        assert set(body) == {"error", "code", "request_id"}

    def test_edit_request(self, api_client, seed_team, provider, images):
        seed_team(image_credits=1)
        provider.succeed(images["png"])
        resp = api_client.post(
            "/v1/images/generate",
            headers=_headers(),
            json={"brief": {"description": "make it blue"}, "isEdit": True, "existingImage": images["png_url"]},
        )
        assert resp.status_code == 200

    def test_edit_without_image_is_400(self, api_client, seed_team):
        seed_team(image_credits=1)
        resp = api_client.post(
            "/v1/images/generate",
            headers=_headers(),
            json={"brief": {"description": "make it blue"}, "isEdit": True},
        )
        assert resp.status_code == 400


class TestEntityEndpoints:
    @pytest.mark.parametrize("path,payload", [
        ("/v1/personas", {"name": "Ana"}),
        ("/v1/themes", {"title": "Summer launch"}),
        ("/v1/brands", {"name": "Acme"}),
    ])
    def test_free_creation_shape(self, api_client, seed_team, path, payload):
        seed_team(credits=0)
        resp = api_client.post(path, headers=_headers(), json=payload)

        assert resp.status_code == 200
        body = resp.json()
        assert body["entityId"]
        assert body["attemptsUsed"] == 1
        assert body["isFree"] is True
        assert body["freeUsesRemaining"] == 2
        assert body["remainingBalance"] == 0

    def test_fourth_persona_without_credits_is_402(self, api_client, seed_team):
        seed_team(credits=0)
        for i in range(3):
            assert api_client.post("/v1/personas", headers=_headers(), json={"name": f"P{i}"}).status_code == 200

        resp = api_client.post("/v1/personas", headers=_headers(), json={"name": "P4"})
        assert resp.status_code == 402
        assert resp.json()["code"] == "insufficient_credits"

    def test_unknown_brand_is_404(self, api_client, seed_team):
        seed_team()
        resp = api_client.post("/v1/themes", headers=_headers(), json={"title": "T", "brandId": "nope"})
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"


class TestCreditsEndpoints:
    def test_summary(self, api_client, seed_team):
        seed_team(credits=3, image_credits=4)
        resp = api_client.get("/v1/credits", headers=_headers())

        assert resp.status_code == 200
        body = resp.json()
        assert body["credits"] == 3
        assert body["imageCredits"] == 4
        assert body["freeUsage"]["brand_creation"]["remaining"] == 3

    def test_history(self, api_client, seed_team):
        seed_team(credits=0)
        api_client.post("/v1/brands", headers=_headers(), json={"name": "Acme"})

        resp = api_client.get("/v1/credits/history", headers=_headers(), params={"limit": 5})
        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 1
        entry = body["entries"][0]
        assert entry["actionType"] == "brand_creation"
        assert entry["amountDebited"] == 0
        assert entry["metadata"]["free"] is True

    def test_history_limit_validated(self, api_client, seed_team):
        seed_team()
        resp = api_client.get("/v1/credits/history", headers=_headers(), params={"limit": 0})
        assert resp.status_code == 400


class TestOperationalEndpoints:
    def test_healthz(self, api_client):
        assert api_client.get("/healthz").json() == {"status": "ok"}

    def test_readyz(self, api_client):
        assert api_client.get("/readyz").status_code == 200

    def test_readyz_database_unreachable(self, api_client, monkeypatch):
        monkeypatch.setattr(health, "check_connection", lambda: False)
        resp = api_client.get("/readyz")
        assert resp.status_code == 503
        assert resp.json()["detail"] == "database unreachable"

    def test_metrics_exposes_counters(self, api_client):
        api_client.get("/healthz")
        resp = api_client.get("/metrics")
        assert resp.status_code == 200
        assert "http_requests_total" in resp.text


def test_check_connection():
    assert check_connection() is True
