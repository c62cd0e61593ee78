"""
Routes for the AI assistant blueprint.

Gemini failures and a missing API key surface as 503 responses.
"""

from flask import request
from flask_login import current_user, login_required

from app.blueprints.ai import bp
from app.responses import get_json_body, success
from app.services import ai_service


@bp.route("/advice", methods=["POST"])
@login_required
def advice():
    """Business advice for ``query``, logged when an organization is given."""
    payload = get_json_body()
    return success(
        ai_service.get_business_advice(
            payload.get("query"),
            current_user.id,
            context_data=payload.get("context_data"),
            organization_id=payload.get("organization_id"),
        )
    )


@bp.route("/analyze-services", methods=["POST"])
@login_required
def analyze_services():
    payload = get_json_body()
    return success(
        ai_service.analyze_service_performance(
            payload.get("organization_id"),
            date_from=payload.get("date_from"),
            date_to=payload.get("date_to"),
        )
    )


@bp.route("/generate-content", methods=["POST"])
@login_required
def generate_content():
    """JOB_DESCRIPTION, SAFETY_REGULATIONS or DEPT_FUNCTIONS from ``context``."""
    payload = get_json_body()
    return success(ai_service.generate_content(payload.get("type"), payload.get("context")))


@bp.route("/conversations")
@login_required
def conversations():
    limit = min(max(request.args.get("limit", 50, type=int) or 50, 1), 200)
    rows = ai_service.get_conversations(
        request.args.get("organization_id", type=int),
        session_id=request.args.get("session_id") or None,
        limit=limit,
    )
    return success({"conversations": rows})


@bp.route("/insights")
@login_required
def insights():
    limit = min(max(request.args.get("limit", 20, type=int) or 20, 1), 100)
    rows = ai_service.get_insights(
        request.args.get("organization_id", type=int),
        insight_type=request.args.get("type") or None,
        limit=limit,
    )
    return success({"insights": rows})


@bp.route("/insights/<int:insight_id>/action", methods=["PATCH"])
@login_required
def mark_insight_actioned(insight_id):
    insight = ai_service.mark_insight_actioned(insight_id)
    return success({"insight": insight.to_dict()}, message="Insight marked as actioned")
