"""
Tests for the AI assistant blueprint.

Gemini is replaced with a canned fake; the unavailable path clears the
API key instead.
"""

import pytest

from app.services import ai_service


class CannedGemini:
    def generate(self, system_instruction, prompt):  # pylint: disable=unused-argument
        return "Offer a loyalty card."


@pytest.fixture
def gemini(monkeypatch):
    monkeypatch.setattr(ai_service, "GeminiApiClient", CannedGemini)


@pytest.fixture
def org_id(client, user_headers):
    return client.post(
        "/api/organizations/",
        json={"name": "Corner Cafe", "industry_type": "RESTAURANT"},
        headers=user_headers,
    ).get_json()["data"]["organization"]["id"]


class TestAdvice:
    def test_advice_is_logged_per_organization(self, client, user_headers, org_id, gemini):
        response = client.post(
            "/api/ai/advice",
            json={"query": "How to keep regulars?", "organization_id": org_id},
            headers=user_headers,
        )
        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data["advice"] == "Offer a loyalty card."

        rows = client.get(
            f"/api/ai/conversations?organization_id={org_id}", headers=user_headers
        ).get_json()["data"]["conversations"]
        assert len(rows) == 2

    def test_missing_api_key_is_503(self, client, user_headers, app, monkeypatch):
        monkeypatch.setitem(app.config, "GEMINI_API_KEY", "")
        response = client.post(
            "/api/ai/advice", json={"query": "Anything?"}, headers=user_headers
        )
        assert response.status_code == 503
        assert response.get_json()["status"] == "error"

    def test_conversations_need_organization(self, client, user_headers):
        response = client.get("/api/ai/conversations", headers=user_headers)
        assert response.status_code == 400


class TestContentAndInsights:
    def test_generate_content(self, client, user_headers, gemini):
        response = client.post(
            "/api/ai/generate-content",
            json={"type": "SAFETY_REGULATIONS", "context": "Commercial kitchen"},
            headers=user_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["data"]["content"] == "Offer a loyalty card."

    def test_analysis_creates_insight(self, client, user_headers, org_id, gemini):
        client.post(
            "/api/services/",
            json={
                "title": "Birthday party",
                "industry_type": "RESTAURANT",
                "customer_name": "Linh",
                "amount": 1200000,
                "date": "2024-07-07",
                "organization_id": org_id,
            },
            headers=user_headers,
        )
        analysis = client.post(
            "/api/ai/analyze-services", json={"organization_id": org_id}, headers=user_headers
        ).get_json()["data"]
        assert analysis["records_analyzed"] == 1

        insights = client.get(
            f"/api/ai/insights?organization_id={org_id}", headers=user_headers
        ).get_json()["data"]["insights"]
        assert insights[0]["id"] == analysis["insight_id"]

        response = client.patch(
            f"/api/ai/insights/{analysis['insight_id']}/action", headers=user_headers
        )
        assert response.get_json()["data"]["insight"]["is_actioned"] is True
