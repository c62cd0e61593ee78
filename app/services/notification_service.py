"""
Notification service — create, deliver and manage in-app notifications.

Notifications belong to exactly one user.  Reads and mutations are
always scoped to the owner: another user's notification behaves as if
it does not exist.
"""

import logging
import smtplib
from datetime import timedelta
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from flask import current_app
from sqlalchemy import desc, func, or_

from app.errors import NotFoundError, ValidationError
from app.extensions import db
from app.models.base import utcnow
from app.models.notification import NOTIFICATION_PRIORITIES, Notification
from app.models.user import User
from app.validators import parse_datetime

logger = logging.getLogger(__name__)


def _not_expired(now):
    return or_(Notification.expires_at.is_(None), Notification.expires_at > now)


def _get_owned(notification_id: int, user_id: int) -> Notification:
    notification = db.session.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError("Notification not found")
    return notification


# -- Email delivery --------------------------------------------------------


def email_enabled() -> bool:
    return bool(current_app.config.get("SMTP_HOST"))


def _email_message(notification: Notification, recipient: User) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = f"[ServiceNexus] {notification.title}"
    msg["From"] = current_app.config["MAIL_FROM"]
    msg["To"] = recipient.email

    greeting = f"Hello {recipient.first_name}," if recipient.first_name else "Hello,"
    text = (
        f"{greeting}\n\n{notification.title}\n\n{notification.message}\n\n"
        "---\nThis is an automated notification from ServiceNexus."
    )
    html = (
        f"<p>{escape(greeting)}</p>"
        f"<h2>{escape(notification.title)}</h2>"
        f"<p>{escape(notification.message)}</p>"
        "<hr><p><small>This is an automated notification from ServiceNexus.</small></p>"
    )
    msg.attach(MIMEText(text, "plain", "utf-8"))
    msg.attach(MIMEText(html, "html", "utf-8"))
    return msg


def send_email_notification(notification: Notification) -> bool:
    """
    Email a copy of the notification to its recipient.

    Returns:
        True when the message was handed to the SMTP server.  Delivery
        problems are logged and reported as False; the in-app
        notification stands either way.
    """
    if not email_enabled():
        logger.warning("SMTP is not configured; notification ID %s not emailed", notification.id)
        return False
    recipient = db.session.get(User, notification.user_id)
    if recipient is None or not recipient.email:
        logger.warning("No email address for user ID %s", notification.user_id)
        return False

    config = current_app.config
    try:
        with smtplib.SMTP(
            config["SMTP_HOST"], config["SMTP_PORT"], timeout=config["SMTP_TIMEOUT"]
        ) as smtp:
            if config["SMTP_USE_TLS"]:
                smtp.starttls()
            if config["SMTP_USER"]:
                smtp.login(config["SMTP_USER"], config["SMTP_PASSWORD"])
            smtp.send_message(_email_message(notification, recipient))
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("Emailing notification ID %s failed: %s", notification.id, exc)
        return False

    logger.info("Emailed notification ID %s to user ID %d", notification.id, recipient.id)
    return True


# -- Creation --------------------------------------------------------------


def create_notification(
    user_id: int | None,
    title: str | None,
    message: str | None,
    type: str = "info",  # pylint: disable=redefined-builtin
    data: dict | None = None,
    priority: str = "normal",
    organization_id: int | None = None,
    expires_at=None,
    send_email: bool = False,
    commit: bool = True,
) -> Notification:
    """
    Create a notification for one user.

    Args:
        send_email: Also email a copy to the user when SMTP is configured.
        commit:     When False the caller owns the transaction.

    Raises:
        ValidationError: If user, title or message is missing or the
                         priority is unknown.
        NotFoundError:   If the user does not exist.
    """
    if not user_id or not title or not message:
        raise ValidationError("User ID, title and message are required")
    if priority not in NOTIFICATION_PRIORITIES:
        raise ValidationError(
            f"Invalid priority. Must be one of: {', '.join(NOTIFICATION_PRIORITIES)}"
        )
    if db.session.get(User, user_id) is None:
        raise NotFoundError("User not found")

    notification = Notification(
        user_id=user_id,
        organization_id=organization_id,
        type=type or "info",
        title=title,
        message=message,
        data=data or {},
        priority=priority,
        expires_at=parse_datetime(expires_at, "expires_at"),
    )
    db.session.add(notification)
    if send_email:
        db.session.flush()
        notification.is_email_sent = send_email_notification(notification)
    if commit:
        db.session.commit()
    else:
        db.session.flush()

    logger.info(
        "Created %s notification ID %d for user ID %d",
        notification.type,
        notification.id,
        user_id,
    )
    return notification


def create_bulk_notifications(
    user_ids: list[int] | None,
    title: str | None,
    message: str | None,
    type: str = "info",  # pylint: disable=redefined-builtin
    data: dict | None = None,
    priority: str = "normal",
    organization_id: int | None = None,
    expires_at=None,
    send_email: bool = False,
) -> int:
    """
    Send the same notification to several users in one transaction.

    Returns:
        Number of notifications created.
    """
    if not isinstance(user_ids, list) or not user_ids:
        raise ValidationError("user_ids must be a non-empty array")
    if not title or not message:
        raise ValidationError("Title and message are required")

    known = {
        row[0] for row in db.session.query(User.id).filter(User.id.in_(user_ids)).all()
    }
    missing = [uid for uid in user_ids if uid not in known]
    if missing:
        raise NotFoundError(f"Users not found: {', '.join(str(uid) for uid in missing)}")

    for user_id in dict.fromkeys(user_ids):
        create_notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            data=data,
            priority=priority,
            organization_id=organization_id,
            expires_at=expires_at,
            send_email=send_email,
            commit=False,
        )
    db.session.commit()
    count = len(dict.fromkeys(user_ids))
    logger.info("Created %d bulk notifications", count)
    return count


def send_system_notification(user_id, title, message, data=None, priority="normal"):
    """Create a notification of type ``system``."""
    return create_notification(
        user_id=user_id, title=title, message=message, type="system", data=data, priority=priority
    )


def send_service_notification(
    user_id, title, message, service_record_id=None, organization_id=None, data=None
):
    """Create a ``service`` notification, optionally linked to a record."""
    payload = dict(data or {})
    if service_record_id is not None:
        payload["service_record_id"] = service_record_id
    return create_notification(
        user_id=user_id,
        title=title,
        message=message,
        type="service",
        data=payload,
        organization_id=organization_id,
    )


def send_alert_notification(user_id, title, message, data=None, organization_id=None):
    """Create a high-priority ``alert`` notification."""
    return create_notification(
        user_id=user_id,
        title=title,
        message=message,
        type="alert",
        data=data,
        priority="high",
        organization_id=organization_id,
    )


# -- Queries ---------------------------------------------------------------


def get_user_notifications(
    user_id: int,
    limit: int = 20,
    offset: int = 0,
    unread_only: bool = False,
    type: str | None = None,  # pylint: disable=redefined-builtin
    priority: str | None = None,
) -> dict:
    """Return a user's unexpired notifications, newest first, with the
    unread count."""
    now = utcnow()
    query = Notification.query.filter(Notification.user_id == user_id, _not_expired(now))
    if unread_only:
        query = query.filter(Notification.is_read == False)  # noqa: E712
    if type:
        query = query.filter(Notification.type == type)
    if priority:
        query = query.filter(Notification.priority == priority)

    total = query.count()
    items = (
        query.order_by(desc(Notification.created_at), desc(Notification.id))
        .offset(max(offset, 0))
        .limit(limit)
        .all()
    )
    return {
        "notifications": [item.to_dict() for item in items],
        "unread_count": get_unread_count(user_id),
        "total": total,
        "limit": limit,
        "offset": offset,
    }


def get_unread_count(user_id: int) -> int:
    return Notification.query.filter(
        Notification.user_id == user_id,
        Notification.is_read == False,  # noqa: E712
        _not_expired(utcnow()),
    ).count()


def get_notification(notification_id: int, user_id: int) -> Notification:
    """Return one of the user's notifications or raise NotFoundError."""
    return _get_owned(notification_id, user_id)


def get_notification_stats(organization_id: int | None, user_id: int | None = None) -> dict:
    """Count notifications (total, unread, by type and priority)."""
    criteria = []
    if organization_id:
        criteria.append(Notification.organization_id == organization_id)
    if user_id:
        criteria.append(Notification.user_id == user_id)

    total = Notification.query.filter(*criteria).count()
    unread = Notification.query.filter(
        Notification.is_read == False, *criteria  # noqa: E712
    ).count()
    by_type = (
        db.session.query(Notification.type, func.count(Notification.id))
        .filter(*criteria)
        .group_by(Notification.type)
        .all()
    )
    by_priority = (
        db.session.query(Notification.priority, func.count(Notification.id))
        .filter(*criteria)
        .group_by(Notification.priority)
        .all()
    )
    return {
        "total": total,
        "unread": unread,
        "read": total - unread,
        "by_type": dict(by_type),
        "by_priority": dict(by_priority),
    }


# -- Mutations -------------------------------------------------------------


def mark_as_read(notification_id: int, user_id: int) -> Notification:
    """Mark one notification read, stamping ``read_at`` the first time."""
    notification = _get_owned(notification_id, user_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        db.session.commit()
    return notification


def mark_all_as_read(user_id: int) -> int:
    """Mark every unread notification of the user read; return the count."""
    now = utcnow()
    unread = Notification.query.filter_by(user_id=user_id, is_read=False).all()
    for notification in unread:
        notification.is_read = True
        notification.read_at = now
    db.session.commit()
    logger.info("Marked %d notifications read for user ID %d", len(unread), user_id)
    return len(unread)


def delete_notification(notification_id: int, user_id: int) -> None:
    """Delete one of the user's notifications."""
    notification = _get_owned(notification_id, user_id)
    db.session.delete(notification)
    db.session.commit()
    logger.info("Deleted notification ID %d", notification_id)


def cleanup_expired() -> int:
    """Delete notifications past their ``expires_at``; return the count."""
    deleted = Notification.query.filter(
        Notification.expires_at.isnot(None), Notification.expires_at <= utcnow()
    ).delete(synchronize_session=False)
    db.session.commit()
    logger.info("Deleted %d expired notifications", deleted)
    return deleted


def default_expiry(days: int) -> str:
    """Return an ISO expiry timestamp ``days`` from now."""
    return (utcnow() + timedelta(days=days)).isoformat()
