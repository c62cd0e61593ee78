"""
Routes for the notifications blueprint.

Reading and managing notifications is limited to their owner.
Creating notifications for other users requires ADMIN (or MANAGER for
alerts and service notifications).
"""

from flask import request
from flask_login import current_user, login_required

from app.blueprints.notifications import bp
from app.decorators import role_required
from app.errors import PermissionDenied, ValidationError
from app.responses import get_json_body, success
from app.services import notification_service
from app.validators import parse_number


def _expires_at(payload: dict):
    """``expires_at`` as given, or ``expires_in`` days from now."""
    if payload.get("expires_at"):
        return payload["expires_at"]
    days = parse_number(payload.get("expires_in"), "expires_in", minimum=0)
    return notification_service.default_expiry(days) if days else None


def _created(notification, message: str):
    return success({"notification": notification.to_dict()}, message=message, status_code=201)


# =========================================================================
# Own notifications
# =========================================================================


@bp.route("/")
@login_required
def list_notifications():
    """
    Newest first; expired ones are hidden.

    Query args: limit (default 20), offset, unread_only, type, priority.
    """
    limit = min(max(request.args.get("limit", 20, type=int) or 20, 1), 100)
    return success(
        notification_service.get_user_notifications(
            current_user.id,
            limit=limit,
            offset=request.args.get("offset", 0, type=int) or 0,
            unread_only=request.args.get("unread_only", "false").lower() == "true",
            type=request.args.get("type") or None,
            priority=request.args.get("priority") or None,
        )
    )


@bp.route("/<int:notification_id>")
@login_required
def get_notification(notification_id):
    notification = notification_service.get_notification(notification_id, current_user.id)
    return success({"notification": notification.to_dict()})


@bp.route("/<int:notification_id>/read", methods=["PATCH"])
@login_required
def mark_read(notification_id):
    notification = notification_service.mark_as_read(notification_id, current_user.id)
    return success({"notification": notification.to_dict()}, message="Notification marked as read")


@bp.route("/read-all", methods=["PATCH"])
@login_required
def mark_all_read():
    count = notification_service.mark_all_as_read(current_user.id)
    return success({"updated_count": count}, message="All notifications marked as read")


@bp.route("/<int:notification_id>", methods=["DELETE"])
@login_required
def delete_notification(notification_id):
    notification_service.delete_notification(notification_id, current_user.id)
    return success(message="Notification deleted successfully")


# =========================================================================
# Statistics and creation
# =========================================================================


@bp.route("/stats/overview")
@login_required
@role_required("ADMIN", "MANAGER")
def notification_stats():
    return success(
        notification_service.get_notification_stats(
            request.args.get("organization_id", type=int),
            user_id=request.args.get("user_id", type=int),
        )
    )


@bp.route("/", methods=["POST"])
@login_required
@role_required("ADMIN")
def create_notification():
    payload = get_json_body()
    notification = notification_service.create_notification(
        user_id=payload.get("user_id"),
        title=payload.get("title"),
        message=payload.get("message"),
        type=payload.get("type") or "info",
        data=payload.get("data"),
        priority=payload.get("priority") or "normal",
        organization_id=payload.get("organization_id"),
        expires_at=_expires_at(payload),
        send_email=bool(payload.get("send_email")),
    )
    return _created(notification, "Notification created successfully")


@bp.route("/bulk", methods=["POST"])
@login_required
@role_required("ADMIN")
def create_bulk():
    """Send one notification to every id in ``user_ids``."""
    payload = get_json_body()
    count = notification_service.create_bulk_notifications(
        payload.get("user_ids"),
        payload.get("title"),
        payload.get("message"),
        type=payload.get("type") or "info",
        data=payload.get("data"),
        priority=payload.get("priority") or "normal",
        organization_id=payload.get("organization_id"),
        expires_at=_expires_at(payload),
        send_email=bool(payload.get("send_email")),
    )
    return success(
        {"created_count": count},
        message="Bulk notifications created successfully",
        status_code=201,
    )


@bp.route("/system", methods=["POST"])
@login_required
@role_required("ADMIN")
def create_system():
    payload = get_json_body()
    notification = notification_service.send_system_notification(
        payload.get("user_id"),
        payload.get("title"),
        payload.get("message"),
        data=payload.get("data"),
        priority=payload.get("priority") or "normal",
    )
    return _created(notification, "System notification created successfully")


@bp.route("/service", methods=["POST"])
@login_required
def create_service():
    """Any user may notify themselves; ADMIN/MANAGER may notify others."""
    payload = get_json_body()
    user_id = payload.get("user_id")
    if not user_id:
        raise ValidationError("User ID, title and message are required")
    if user_id != current_user.id and not current_user.has_role("ADMIN", "MANAGER"):
        raise PermissionDenied(
            "Insufficient permissions to create service notification for this user"
        )
    notification = notification_service.send_service_notification(
        user_id,
        payload.get("title"),
        payload.get("message"),
        service_record_id=payload.get("service_record_id"),
        organization_id=payload.get("organization_id"),
        data=payload.get("data"),
    )
    return _created(notification, "Service notification created successfully")


@bp.route("/alert", methods=["POST"])
@login_required
@role_required("ADMIN", "MANAGER")
def create_alert():
    payload = get_json_body()
    notification = notification_service.send_alert_notification(
        payload.get("user_id"),
        payload.get("title"),
        payload.get("message"),
        data=payload.get("data"),
        organization_id=payload.get("organization_id"),
    )
    return _created(notification, "Alert notification created successfully")


# =========================================================================
# Maintenance
# =========================================================================


@bp.route("/cleanup", methods=["POST"])
@login_required
@role_required("ADMIN")
def cleanup():
    deleted = notification_service.cleanup_expired()
    return success(
        {"deleted_count": deleted}, message="Expired notifications cleaned up successfully"
    )


@bp.route("/test", methods=["POST"])
@login_required
@role_required("ADMIN")
def send_test():
    """Send a test notification to the caller."""
    notification = notification_service.send_system_notification(
        current_user.id,
        "Test Notification",
        "This is a test notification to verify the notification system is working correctly.",
        data={"test": True},
    )
    return _created(notification, "Test notification created successfully")
