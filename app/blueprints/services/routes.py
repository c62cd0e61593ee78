"""
Routes for the services blueprint.

Service records are tickets for work done for a customer.  Changes to
title, status or assignee are tracked in the record's history.
"""

from flask import request
from flask_login import current_user, login_required

from app.blueprints.services import bp
from app.responses import get_json_body, page_args, paginated, success
from app.services import service_record_service
from app.validators import parse_date


def service_filter_args() -> dict:
    """Read the service list filters from the query string."""
    return {
        "search": request.args.get("search", "").strip() or None,
        "status": request.args.get("status") or None,
        "priority": request.args.get("priority") or None,
        "industry_type": request.args.get("industry_type") or None,
        "organization_id": request.args.get("organization_id", type=int),
        "assigned_to": request.args.get("assigned_to", type=int),
        "date_from": parse_date(request.args.get("date_from"), "date_from"),
        "date_to": parse_date(request.args.get("date_to"), "date_to"),
    }


@bp.route("/")
@login_required
def list_services():
    page, limit = page_args()
    items, total = service_record_service.get_service_records(
        page=page, per_page=limit, **service_filter_args()
    )
    return paginated("services", items, page, limit, total)


@bp.route("/stats/overview")
@login_required
def service_stats():
    """Counts, revenue, per-industry breakdown and the 12-month trend."""
    return success(
        service_record_service.get_service_stats(
            organization_id=request.args.get("organization_id", type=int)
        )
    )


@bp.route("/<int:record_id>")
@login_required
def get_service(record_id):
    return success({"service": service_record_service.get_service_record_detail(record_id)})


@bp.route("/", methods=["POST"])
@login_required
def create_service():
    record = service_record_service.create_service_record(
        get_json_body(), created_by=current_user.id
    )
    return success(
        {"service": service_record_service.serialize(record)},
        message="Service record created successfully",
        status_code=201,
    )


@bp.route("/<int:record_id>", methods=["PUT"])
@login_required
def update_service(record_id):
    record = service_record_service.update_service_record(
        record_id, get_json_body(), changed_by=current_user.id
    )
    return success(
        {"service": service_record_service.serialize(record)},
        message="Service record updated successfully",
    )


@bp.route("/<int:record_id>", methods=["DELETE"])
@login_required
def delete_service(record_id):
    service_record_service.delete_service_record(record_id, changed_by=current_user.id)
    return success(message="Service record deleted successfully")
