"""
Tests for ai_service and the Gemini client.

The Gemini client is replaced with a recording fake so no network call
is made.
"""

from datetime import date

import pytest

from app.errors import NotFoundError, ServiceUnavailable, ValidationError
from app.models.ai import AIConversation, AIInsight
from app.services import ai_service, organization_service, service_record_service
from app.services.gemini_client import GeminiApiClient, GeminiApiError


class FakeGemini:
    """Records prompts and answers with a canned reply."""

    calls: list = []
    reply = "Hire a second cashier."
    error: Exception | None = None

    def generate(self, system_instruction, prompt):
        FakeGemini.calls.append((system_instruction, prompt))
        if FakeGemini.error is not None:
            raise FakeGemini.error
        return FakeGemini.reply


@pytest.fixture
def gemini(monkeypatch):
    FakeGemini.calls = []
    FakeGemini.error = None
    monkeypatch.setattr(ai_service, "GeminiApiClient", FakeGemini)
    return FakeGemini


@pytest.fixture
def owner(make_user):
    user, _ = make_user("MANAGER")
    return user


@pytest.fixture
def org(owner):
    return organization_service.create_organization(
        {"name": "Bean Bar", "industry_type": "RESTAURANT"}, owner.id
    )


class TestAdvice:
    def test_advice_without_organization_is_not_logged(self, gemini, owner):
        result = ai_service.get_business_advice("How do I cut queue times?", owner.id)
        assert result["advice"] == "Hire a second cashier."
        assert result["session_id"] is None
        assert AIConversation.query.count() == 0
        assert gemini.calls[0][0] == ai_service.ADVISOR_INSTRUCTION

    def test_advice_logs_question_and_answer(self, gemini, owner, org):
        result = ai_service.get_business_advice(
            "Should I open on Sundays?", owner.id, {"staff": 4}, org.id
        )
        rows = AIConversation.query.filter_by(session_id=result["session_id"]).all()
        assert sorted(row.message_type for row in rows) == ["assistant", "user"]
        assert '"staff": 4' in gemini.calls[0][1]

        history = ai_service.get_conversations(org.id, result["session_id"])
        assert len(history) == 2

    def test_query_required(self, gemini, owner):
        with pytest.raises(ValidationError, match="Query is required"):
            ai_service.get_business_advice("   ", owner.id)

    def test_client_failure_is_unavailable(self, gemini, owner):
        gemini.error = GeminiApiError("boom")
        with pytest.raises(ServiceUnavailable) as excinfo:
            ai_service.get_business_advice("Hello?", owner.id)
        assert excinfo.value.status_code == 503


class TestPerformanceAnalysis:
    def test_no_records(self, gemini, org):
        with pytest.raises(NotFoundError, match="No service records"):
            ai_service.analyze_service_performance(org.id)

    def test_analysis_stores_insight(self, gemini, org, owner, db_session):
        service_record_service.create_service_record(
            {
                "title": "Catering",
                "industry_type": "RESTAURANT",
                "customer_name": "Acme",
                "amount": 500,
                "date": date(2024, 4, 2).isoformat(),
                "organization_id": org.id,
            },
            owner.id,
        )
        result = ai_service.analyze_service_performance(org.id)

        assert result["records_analyzed"] == 1
        assert "Catering" in gemini.calls[0][1]
        insight = db_session.get(AIInsight, result["insight_id"])
        assert insight.insight_type == "performance"

        listed = ai_service.get_insights(org.id)
        assert listed[0]["id"] == insight.id
        ai_service.mark_insight_actioned(insight.id)
        assert insight.is_actioned is True

    def test_date_filter_excludes_records(self, gemini, org, owner):
        service_record_service.create_service_record(
            {
                "title": "Old job",
                "industry_type": "RESTAURANT",
                "customer_name": "Acme",
                "amount": 10,
                "date": "2020-01-01",
                "organization_id": org.id,
            },
            owner.id,
        )
        with pytest.raises(NotFoundError):
            ai_service.analyze_service_performance(org.id, date_from="2024-01-01")


class TestContent:
    def test_job_description(self, gemini):
        result = ai_service.generate_content("JOB_DESCRIPTION", {"title": "Barista"})
        assert result["type"] == "JOB_DESCRIPTION"
        assert gemini.calls[0][1].startswith("Write the job description for:")

    def test_invalid_type(self, gemini):
        with pytest.raises(ValidationError, match="Invalid content type"):
            ai_service.generate_content("POEM", "anything")

    def test_context_required(self, gemini):
        with pytest.raises(ValidationError, match="Context is required"):
            ai_service.generate_content("DEPT_FUNCTIONS", None)


class TestGeminiClient:
    def test_requires_api_key(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "GEMINI_API_KEY", "")
        with app.app_context():
            with pytest.raises(GeminiApiError, match="not configured"):
                GeminiApiClient()

    def test_generate_extracts_text(self, app, monkeypatch):
        captured = {}

        def fake_request(self, endpoint, body):
            captured["endpoint"] = endpoint
            captured["body"] = body
            return {"candidates": [{"content": {"parts": [{"text": " Hi "}, {"text": "there"}]}}]}

        monkeypatch.setattr(GeminiApiClient, "_make_request", fake_request)
        monkeypatch.setitem(app.config, "GEMINI_API_KEY", "test-key")
        with app.app_context():
            text = GeminiApiClient().generate("system", "prompt")

        assert text == "Hi there"
        assert captured["endpoint"] == f"models/{app.config['GEMINI_MODEL']}:generateContent"
        assert captured["body"]["systemInstruction"]["parts"][0]["text"] == "system"

    @pytest.mark.parametrize(
        "payload",
        [{}, {"candidates": []}, {"candidates": [{"content": {"parts": [{"text": "  "}]}}]}],
    )
    def test_empty_answers_raise(self, payload):
        with pytest.raises(GeminiApiError):
            GeminiApiClient._extract_text(payload)  # pylint: disable=protected-access
