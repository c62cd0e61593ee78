"""
Service record service — CRUD, change history and statistics for
service tickets.

Every change to a tracked field (title, status, assignee) appends a
``ServiceRecordHistory`` row in the same transaction as the update, so
the history can never drift from the record.
"""

import logging
from collections import OrderedDict
from datetime import date

from sqlalchemy import desc, or_

from app.errors import NotFoundError, ValidationError
from app.extensions import db
from app.models.organization import INDUSTRY_TYPES, Employee
from app.models.service_record import (
    PRIORITIES,
    SERVICE_STATUSES,
    TRACKED_FIELDS,
    ServiceRecord,
    ServiceRecordHistory,
)
from app.services import audit_service, organization_service
from app.validators import parse_choice, parse_date, parse_number, parse_string_list

logger = logging.getLogger(__name__)

_TEXT_FIELDS = (
    "title",
    "description",
    "customer_name",
    "customer_email",
    "customer_phone",
    "currency",
    "notes",
)


def get_service_record_by_id(record_id: int) -> ServiceRecord | None:
    """Return a service record by primary key, or None if not found."""
    return db.session.get(ServiceRecord, record_id)


def _get_record(record_id: int) -> ServiceRecord:
    record = get_service_record_by_id(record_id)
    if record is None:
        raise NotFoundError("Service record not found")
    return record


def _check_assignee(organization_id: int, employee_id) -> None:
    if employee_id is None:
        return
    employee = db.session.get(Employee, employee_id)
    if employee is None or employee.organization_id != organization_id:
        raise NotFoundError("Assigned employee not found")


def _clean(data: dict) -> dict:
    """Normalize the typed fields present in ``data``."""
    cleaned = {field: data[field] for field in _TEXT_FIELDS if data.get(field) is not None}
    if data.get("industry_type") is not None:
        cleaned["industry_type"] = parse_choice(
            data["industry_type"], "industry type", INDUSTRY_TYPES
        )
    if data.get("status") is not None:
        cleaned["status"] = parse_choice(data["status"], "status", SERVICE_STATUSES)
    if data.get("priority") is not None:
        cleaned["priority"] = parse_choice(data["priority"], "priority", PRIORITIES)
    if data.get("amount") is not None:
        cleaned["amount"] = parse_number(data["amount"], "amount", minimum=0)
    for field in ("date", "due_date", "completion_date"):
        if data.get(field) is not None:
            cleaned[field] = parse_date(data[field], field)
    if data.get("tags") is not None:
        cleaned["tags"] = parse_string_list(data["tags"], "tags")
    if "assigned_to" in data:
        cleaned["assigned_to"] = data["assigned_to"]
    return cleaned


def serialize(record: ServiceRecord, include_history: bool = False) -> dict:
    data = record.to_dict()
    data["organization_name"] = record.organization.name if record.organization else None
    data["assigned_employee_name"] = record.assignee.name if record.assignee else None
    if include_history:
        data["history"] = [entry.to_dict() for entry in record.history]
    return data


def _filtered_query(
    search: str | None = None,
    status: str | None = None,
    priority: str | None = None,
    industry_type: str | None = None,
    organization_id: int | None = None,
    assigned_to: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
):
    query = ServiceRecord.query
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                ServiceRecord.title.ilike(pattern),
                ServiceRecord.customer_name.ilike(pattern),
                ServiceRecord.notes.ilike(pattern),
            )
        )
    if status:
        query = query.filter(ServiceRecord.status == status)
    if priority:
        query = query.filter(ServiceRecord.priority == priority)
    if industry_type:
        query = query.filter(ServiceRecord.industry_type == industry_type)
    if organization_id:
        query = query.filter(ServiceRecord.organization_id == organization_id)
    if assigned_to:
        query = query.filter(ServiceRecord.assigned_to == assigned_to)
    if date_from:
        query = query.filter(ServiceRecord.date >= date_from)
    if date_to:
        query = query.filter(ServiceRecord.date <= date_to)
    return query


# -- Queries ---------------------------------------------------------------


def get_service_records(page: int = 1, per_page: int = 10, **filters) -> tuple[list[dict], int]:
    """
    Return one page of service records, newest first.

    Keyword filters: search, status, priority, industry_type,
    organization_id, assigned_to, date_from, date_to.
    """
    pagination = (
        _filtered_query(**filters)
        .order_by(desc(ServiceRecord.created_at), desc(ServiceRecord.id))
        .paginate(page=page, per_page=per_page, error_out=False)
    )
    return [serialize(rec) for rec in pagination.items], pagination.total


def get_all_service_records(**filters) -> list[ServiceRecord]:
    """Return every matching record, newest first (used by exports)."""
    return (
        _filtered_query(**filters)
        .order_by(desc(ServiceRecord.created_at), desc(ServiceRecord.id))
        .all()
    )


def get_service_record_detail(record_id: int) -> dict:
    """Return a record with its change history, newest change first."""
    return serialize(_get_record(record_id), include_history=True)


def get_service_stats(organization_id: int | None = None) -> dict:
    """
    Summarize service records: status/priority counts, revenue over
    COMPLETED records, per-industry breakdown and a 12-month trend.
    """
    query = ServiceRecord.query
    if organization_id:
        query = query.filter(ServiceRecord.organization_id == organization_id)
    records = query.all()

    status_counts = {status: 0 for status in SERVICE_STATUSES}
    priority_counts = {priority: 0 for priority in PRIORITIES}
    by_industry: dict[str, dict] = {}
    by_status_total = {status: 0.0 for status in SERVICE_STATUSES}
    revenue = 0.0
    amounts = []

    for rec in records:
        amount = float(rec.amount or 0)
        amounts.append(amount)
        status_counts[rec.status] += 1
        priority_counts[rec.priority] += 1
        by_status_total[rec.status] += amount
        bucket = by_industry.setdefault(
            rec.industry_type, {"industry_type": rec.industry_type, "count": 0, "revenue": 0.0}
        )
        bucket["count"] += 1
        if rec.status == "COMPLETED":
            revenue += amount
            bucket["revenue"] += amount

    # Last 12 calendar months including the current one, oldest first.
    today = date.today()
    months: "OrderedDict[str, dict]" = OrderedDict()
    year, month = today.year, today.month
    for _ in range(12):
        key = f"{year:04d}-{month:02d}"
        months[key] = {"month": key, "count": 0, "revenue": 0.0}
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    months = OrderedDict(reversed(list(months.items())))
    for rec in records:
        key = rec.date.strftime("%Y-%m") if rec.date else None
        if key in months:
            months[key]["count"] += 1
            if rec.status == "COMPLETED":
                months[key]["revenue"] += float(rec.amount or 0)

    return {
        "overview": {
            "total_services": len(records),
            "pending_services": status_counts["PENDING"],
            "in_progress_services": status_counts["IN_PROGRESS"],
            "completed_services": status_counts["COMPLETED"],
            "cancelled_services": status_counts["CANCELLED"],
            "urgent_services": priority_counts["URGENT"],
            "high_priority_services": priority_counts["HIGH"],
            "total_revenue": revenue,
            "avg_amount": sum(amounts) / len(amounts) if amounts else 0.0,
        },
        "by_industry": sorted(by_industry.values(), key=lambda row: -row["count"]),
        "by_status": [
            {"status": status, "count": status_counts[status], "total": by_status_total[status]}
            for status in SERVICE_STATUSES
        ],
        "by_priority": [
            {"priority": priority, "count": priority_counts[priority]}
            for priority in PRIORITIES
        ],
        "monthly_trend": list(months.values()),
    }


# -- Mutations -------------------------------------------------------------


def create_service_record(data: dict, created_by: int | None) -> ServiceRecord:
    """
    Create a service record.

    Raises:
        ValidationError: On missing required fields or invalid values.
        NotFoundError:   If the organization or assigned employee does
                         not exist.
    """
    required = ("title", "industry_type", "customer_name", "amount", "date", "organization_id")
    if any(data.get(field) is None or data.get(field) == "" for field in required):
        raise ValidationError(
            "Title, industry type, customer name, amount, date, and "
            "organization ID are required"
        )
    cleaned = _clean(data)
    org = organization_service.get_active_organization(data["organization_id"])
    _check_assignee(org.id, cleaned.get("assigned_to"))

    record = ServiceRecord(
        organization_id=org.id,
        created_by=created_by,
        updated_by=created_by,
        currency="VND",
        tags=[],
    )
    for field, value in cleaned.items():
        setattr(record, field, value)
    if record.status == "COMPLETED" and record.completion_date is None:
        record.completion_date = date.today()
    db.session.add(record)
    db.session.flush()

    audit_service.log_change(
        user_id=created_by,
        action_type="CREATE",
        entity_type="service_record",
        entity_id=record.id,
        new_value={"title": record.title, "amount": cleaned["amount"], "status": record.status},
    )
    db.session.commit()

    logger.info("Created service record ID %d (%s)", record.id, record.title)
    return record


def update_service_record(record_id: int, data: dict, changed_by: int | None) -> ServiceRecord:
    """
    Apply a partial update and append history rows for tracked fields.

    Raises:
        NotFoundError:   If the record or a new assignee is not found.
        ValidationError: On invalid values.
    """
    record = _get_record(record_id)
    cleaned = _clean(data)
    if cleaned.get("assigned_to") is not None:
        _check_assignee(record.organization_id, cleaned["assigned_to"])

    previous, new = {}, {}
    for field, value in cleaned.items():
        old = getattr(record, field)
        if old == value:
            continue
        previous[field] = old
        new[field] = value
        setattr(record, field, value)
        if field in TRACKED_FIELDS:
            db.session.add(
                ServiceRecordHistory(
                    service_record_id=record.id,
                    field_name=field,
                    old_value=None if old is None else str(old),
                    new_value=None if value is None else str(value),
                    changed_by=changed_by,
                )
            )

    if new.get("status") == "COMPLETED" and record.completion_date is None:
        record.completion_date = date.today()
    record.updated_by = changed_by

    audit_service.log_change(
        user_id=changed_by,
        action_type="UPDATE",
        entity_type="service_record",
        entity_id=record.id,
        previous_value=previous,
        new_value=new,
    )
    db.session.commit()

    logger.info("Updated service record ID %d fields=%s", record.id, sorted(new))
    return record


def delete_service_record(record_id: int, changed_by: int | None) -> None:
    """Hard-delete a service record together with its history."""
    record = _get_record(record_id)
    snapshot = {"title": record.title, "status": record.status}
    db.session.delete(record)

    audit_service.log_change(
        user_id=changed_by,
        action_type="DELETE",
        entity_type="service_record",
        entity_id=record_id,
        previous_value=snapshot,
    )
    db.session.commit()
    logger.info("Deleted service record ID %d", record_id)
