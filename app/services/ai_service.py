"""
AI assistant service — business advice, service-performance analysis
and content generation backed by Gemini.

Conversations are logged per organization so an assistant answer can
always be traced back to the question that produced it.  Analyses are
stored as ``AIInsight`` rows.
"""

import json
import logging
import uuid

from sqlalchemy import desc, or_

from app.errors import NotFoundError, ServiceUnavailable, ValidationError
from app.extensions import db
from app.models.ai import AIConversation, AIInsight
from app.models.base import utcnow
from app.models.service_record import ServiceRecord
from app.services import organization_service
from app.services.gemini_client import GeminiApiClient, GeminiApiError
from app.validators import parse_date

logger = logging.getLogger(__name__)

ADVISOR_INSTRUCTION = (
    "You are an experienced Chief Operating Officer advising small and "
    "medium service businesses. Give practical, prioritized and concise "
    "recommendations. When numbers are provided, ground your advice in them."
)

ANALYST_INSTRUCTION = (
    "You are a business performance analyst. Analyze the service records "
    "you are given and report: overall performance, revenue trends, "
    "bottlenecks by status and priority, staff workload, and three to five "
    "concrete recommendations."
)

CONTENT_INSTRUCTIONS = {
    "JOB_DESCRIPTION": (
        "You write clear, professional job descriptions with sections for "
        "summary, responsibilities, requirements and benefits."
    ),
    "SAFETY_REGULATIONS": (
        "You write workplace safety regulations that are specific, numbered "
        "and compliant with common occupational safety practice."
    ),
    "DEPT_FUNCTIONS": (
        "You describe the functions and responsibilities of a company "
        "department, including its key processes and interfaces with other "
        "departments."
    ),
}

_UNAVAILABLE = (
    "Unable to reach the AI assistant. Check the connection and the "
    "Gemini API key configuration."
)

_MAX_ANALYZED_RECORDS = 50


def _generate(system_instruction: str, prompt: str) -> str:
    """Call Gemini, converting client failures to a 503."""
    try:
        return GeminiApiClient().generate(system_instruction, prompt)
    except GeminiApiError as exc:
        logger.error("AI assistant call failed: %s", exc)
        raise ServiceUnavailable(_UNAVAILABLE) from exc


# -- Advice ----------------------------------------------------------------


def get_business_advice(
    query: str | None,
    user_id: int | None,
    context_data: dict | None = None,
    organization_id: int | None = None,
) -> dict:
    """
    Answer a free-form business question.

    When ``organization_id`` is given the question and answer are logged
    as a conversation pair sharing one ``session_id``.

    Raises:
        ValidationError:    If ``query`` is empty.
        NotFoundError:      If the organization does not exist.
        ServiceUnavailable: If Gemini cannot be reached.
    """
    if not query or not str(query).strip():
        raise ValidationError("Query is required")
    if organization_id:
        organization_service.get_active_organization(organization_id)

    prompt = str(query).strip()
    if context_data:
        prompt = (
            f"{prompt}\n\nBusiness context (JSON):\n"
            f"{json.dumps(context_data, ensure_ascii=False, default=str)}"
        )
    advice = _generate(ADVISOR_INSTRUCTION, prompt)

    session_id = None
    if organization_id:
        session_id = uuid.uuid4().hex
        db.session.add_all(
            [
                AIConversation(
                    user_id=user_id,
                    organization_id=organization_id,
                    session_id=session_id,
                    message_type="user",
                    content=str(query).strip(),
                    extra={"context": context_data or {}},
                ),
                AIConversation(
                    user_id=user_id,
                    organization_id=organization_id,
                    session_id=session_id,
                    message_type="assistant",
                    content=advice,
                    extra={"model": "gemini"},
                ),
            ]
        )
        db.session.commit()

    logger.info("Generated advice for user %s (org %s)", user_id, organization_id)
    return {"advice": advice, "session_id": session_id, "timestamp": utcnow().isoformat()}


# -- Service analysis ------------------------------------------------------


def analyze_service_performance(
    organization_id: int | None, date_from=None, date_to=None
) -> dict:
    """
    Analyze up to 50 of the organization's most recent service records
    and store the result as a ``performance`` insight.

    Raises:
        ValidationError:    If no organization id is given.
        NotFoundError:      If there are no matching records.
        ServiceUnavailable: If Gemini cannot be reached.
    """
    if not organization_id:
        raise ValidationError("Organization ID is required")
    org = organization_service.get_active_organization(organization_id)

    query = ServiceRecord.query.filter(ServiceRecord.organization_id == org.id)
    start = parse_date(date_from, "date_from")
    end = parse_date(date_to, "date_to")
    if start:
        query = query.filter(ServiceRecord.date >= start)
    if end:
        query = query.filter(ServiceRecord.date <= end)
    records = (
        query.order_by(desc(ServiceRecord.created_at), desc(ServiceRecord.id))
        .limit(_MAX_ANALYZED_RECORDS)
        .all()
    )
    if not records:
        raise NotFoundError("No service records found for analysis")

    rows = [
        {
            "title": rec.title,
            "industry_type": rec.industry_type,
            "status": rec.status,
            "priority": rec.priority,
            "amount": float(rec.amount or 0),
            "currency": rec.currency,
            "date": rec.date.isoformat() if rec.date else None,
            "assigned_to": rec.assignee.name if rec.assignee else None,
        }
        for rec in records
    ]
    prompt = (
        f"Organization: {org.name} ({org.industry_type})\n"
        f"Service records ({len(rows)}):\n"
        f"{json.dumps(rows, ensure_ascii=False)}"
    )
    analysis = _generate(ANALYST_INSTRUCTION, prompt)

    insight = AIInsight(
        organization_id=org.id,
        insight_type="performance",
        title=f"Service performance analysis ({len(rows)} records)",
        content=analysis,
        confidence_score=0.85,
        data_source="service_records",
    )
    db.session.add(insight)
    db.session.commit()

    logger.info("Stored performance insight ID %d for organization ID %d", insight.id, org.id)
    return {
        "analysis": analysis,
        "insight_id": insight.id,
        "records_analyzed": len(rows),
    }


# -- Content generation ----------------------------------------------------


def generate_content(content_type: str | None, context: dict | str | None) -> dict:
    """
    Generate a document of one of the supported ``CONTENT_INSTRUCTIONS``
    types.

    Raises:
        ValidationError:    On an unknown type or missing context.
        ServiceUnavailable: If Gemini cannot be reached.
    """
    if content_type not in CONTENT_INSTRUCTIONS:
        raise ValidationError(
            f"Invalid content type. Must be one of: {', '.join(CONTENT_INSTRUCTIONS)}"
        )
    if not context:
        raise ValidationError("Context is required")

    if isinstance(context, dict):
        details = json.dumps(context, ensure_ascii=False, default=str)
    else:
        details = str(context)
    prompt = f"Write the {content_type.replace('_', ' ').lower()} for:\n{details}"
    content = _generate(CONTENT_INSTRUCTIONS[content_type], prompt)
    return {"type": content_type, "content": content, "timestamp": utcnow().isoformat()}


# -- History ---------------------------------------------------------------


def get_conversations(
    organization_id: int | None, session_id: str | None = None, limit: int = 50
) -> list[dict]:
    """Return logged messages for an organization, newest first."""
    if not organization_id:
        raise ValidationError("Organization ID is required")
    query = AIConversation.query.filter(AIConversation.organization_id == organization_id)
    if session_id:
        query = query.filter(AIConversation.session_id == session_id)
    rows = (
        query.order_by(desc(AIConversation.created_at), desc(AIConversation.id))
        .limit(limit)
        .all()
    )
    return [row.to_dict() for row in rows]


def get_insights(
    organization_id: int | None, insight_type: str | None = None, limit: int = 20
) -> list[dict]:
    """Return unexpired insights for an organization, newest first."""
    if not organization_id:
        raise ValidationError("Organization ID is required")
    query = AIInsight.query.filter(
        AIInsight.organization_id == organization_id,
        or_(AIInsight.expires_at.is_(None), AIInsight.expires_at > utcnow()),
    )
    if insight_type:
        query = query.filter(AIInsight.insight_type == insight_type)
    rows = query.order_by(desc(AIInsight.created_at), desc(AIInsight.id)).limit(limit).all()
    return [row.to_dict() for row in rows]


def mark_insight_actioned(insight_id: int) -> AIInsight:
    """Flag an insight as acted upon."""
    insight = db.session.get(AIInsight, insight_id)
    if insight is None:
        raise NotFoundError("Insight not found")
    insight.is_actioned = True
    db.session.commit()
    logger.info("Insight ID %d marked actioned", insight_id)
    return insight
