"""
Routes for the admin blueprint — user management and audit logs.

All routes require the ADMIN role (SUPER_ADMIN always passes).
"""

from flask import request
from flask_login import current_user, login_required

from app.blueprints.admin import bp
from app.decorators import role_required
from app.errors import ValidationError
from app.responses import get_json_body, page_args, paginated, success
from app.services import audit_service, user_service
from app.validators import parse_datetime


# =========================================================================
# User Management
# =========================================================================


@bp.route("/users")
@login_required
@role_required("ADMIN")
def list_users():
    """List users, newest first, with ``search`` and ``role`` filters."""
    page, limit = page_args()
    pagination = user_service.get_all_users(
        page=page,
        per_page=limit,
        search=request.args.get("search", "").strip() or None,
        role=request.args.get("role") or None,
    )
    return paginated(
        "users", [u.to_dict() for u in pagination.items], page, limit, pagination.total
    )


@bp.route("/users/<int:user_id>")
@login_required
@role_required("ADMIN")
def get_user(user_id):
    user = user_service.get_user_or_404(user_id)
    return success({"user": user.to_dict()})


@bp.route("/users/<int:user_id>", methods=["PUT"])
@login_required
@role_required("ADMIN")
def update_user(user_id):
    """Partially update first_name, last_name, role or is_active."""
    user = user_service.update_user(user_id, get_json_body(), changed_by=current_user.id)
    return success({"user": user.to_dict()}, message="User updated successfully")


@bp.route("/users/<int:user_id>", methods=["DELETE"])
@login_required
@role_required("ADMIN")
def deactivate_user(user_id):
    """Soft-delete a user."""
    if user_id == current_user.id:
        raise ValidationError("You cannot deactivate your own account")
    user_service.deactivate_user(user_id, changed_by=current_user.id)
    return success(message="User deactivated successfully")


@bp.route("/users/<int:user_id>/change-password", methods=["POST"])
@login_required
@role_required("ADMIN")
def change_user_password(user_id):
    """Set a user's password; the admin must still supply the current one."""
    payload = get_json_body()
    user_service.change_password(
        user_id,
        payload.get("current_password"),
        payload.get("new_password"),
        changed_by=current_user.id,
    )
    return success(message="Password changed successfully")


# =========================================================================
# Audit Logs
# =========================================================================


@bp.route("/audit-logs")
@login_required
@role_required("ADMIN")
def audit_logs():
    """
    Audit log listing, newest first.

    Query args: user_id, action_type, entity_type, start_date, end_date.
    """
    page, limit = page_args(default_limit=50, max_limit=200)
    pagination = audit_service.get_audit_logs(
        page=page,
        per_page=limit,
        user_id=request.args.get("user_id", type=int),
        action_type=request.args.get("action_type") or None,
        entity_type=request.args.get("entity_type") or None,
        start_date=parse_datetime(request.args.get("start_date"), "start_date"),
        end_date=parse_datetime(request.args.get("end_date"), "end_date"),
    )
    return paginated(
        "audit_logs",
        [entry.to_dict() for entry in pagination.items],
        page,
        limit,
        pagination.total,
    )


@bp.route("/audit-logs/entity-types")
@login_required
@role_required("ADMIN")
def audit_entity_types():
    return success({"entity_types": audit_service.get_distinct_entity_types()})
