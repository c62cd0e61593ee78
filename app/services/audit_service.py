"""
Audit service — the write path and query side of the ``audit_log`` table.

Services call ``log_change`` inside their own transaction, before they
commit, so an audit row is only ever persisted together with the change
it describes.  Snapshots are stored as JSON text; money and dates are
serialized the same way the API renders them.
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from flask import has_request_context, request
from sqlalchemy import desc

from app.extensions import db
from app.models.audit import AUDIT_ACTIONS, AuditLog

logger = logging.getLogger(__name__)

_USER_AGENT_LIMIT = 500


def _json_default(value):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _encode(snapshot: dict[str, Any] | None) -> str | None:
    """Serialize a snapshot; empty snapshots are stored as NULL."""
    if not snapshot:
        return None
    return json.dumps(snapshot, default=_json_default, ensure_ascii=False)


def _client_details() -> tuple[str | None, str | None]:
    """``(ip_address, user_agent)`` of the current request, if any."""
    if not has_request_context():
        return None, None
    agent = request.user_agent.string or None
    return request.remote_addr, agent[:_USER_AGENT_LIMIT] if agent else None


# -- Writing ---------------------------------------------------------------


def log_change(
    user_id: int | None,
    action_type: str,
    entity_type: str,
    entity_id: int | None,
    previous_value: dict[str, Any] | None = None,
    new_value: dict[str, Any] | None = None,
) -> AuditLog:
    """
    Add an audit row to the current session (the caller commits).

    Args:
        user_id:        Acting user, or None for CLI and system actions.
        action_type:    One of ``AUDIT_ACTIONS``.
        entity_type:    Lower-case entity name, e.g. ``service_record``.
        entity_id:      Primary key of the affected row.
        previous_value: Fields before the change (UPDATE/DELETE).
        new_value:      Fields after the change (CREATE/UPDATE).

    Raises:
        ValueError: If ``action_type`` is not a known action.
    """
    if action_type not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action_type}")

    ip_address, user_agent = _client_details()
    entry = AuditLog(
        user_id=user_id,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        previous_value=_encode(previous_value),
        new_value=_encode(new_value),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.add(entry)
    db.session.flush()

    logger.debug(
        "Audit %s %s:%s by user %s", action_type, entity_type, entity_id, user_id
    )
    return entry


def log_login(user_id: int) -> AuditLog:
    return log_change(user_id, "LOGIN", "user", user_id)


def log_logout(user_id: int) -> AuditLog:
    return log_change(user_id, "LOGOUT", "user", user_id)


# -- Reading ---------------------------------------------------------------


def get_audit_logs(
    page: int = 1,
    per_page: int = 50,
    user_id: int | None = None,
    action_type: str | None = None,
    entity_type: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
):
    """
    Page through the audit trail, newest first.

    ``start_date`` and ``end_date`` are inclusive naive-UTC bounds.
    """
    criteria = []
    if user_id is not None:
        criteria.append(AuditLog.user_id == user_id)
    if action_type:
        criteria.append(AuditLog.action_type == action_type.upper())
    if entity_type:
        criteria.append(AuditLog.entity_type == entity_type)
    if start_date:
        criteria.append(AuditLog.created_at >= start_date)
    if end_date:
        criteria.append(AuditLog.created_at <= end_date)

    return (
        AuditLog.query.filter(*criteria)
        .order_by(desc(AuditLog.created_at), desc(AuditLog.id))
        .paginate(page=page, per_page=per_page, error_out=False)
    )


def get_distinct_entity_types() -> list[str]:
    """Entity types present in the trail, for the admin filter menu."""
    return list(
        db.session.scalars(
            db.select(AuditLog.entity_type).distinct().order_by(AuditLog.entity_type)
        )
    )
