"""
Organization service — tenants, their members and work sites.

Listing and detail queries attach aggregate counts (employees,
departments, service records) so the API does not need a second round
trip per organization.  Deletions are soft: ``is_active`` is cleared and
the row stays for audit and reporting.
"""

import logging

from sqlalchemy import desc, func, or_

from app.errors import NotFoundError, ValidationError
from app.extensions import db
from app.models.organization import (
    DEPARTMENT_TYPES,
    INDUSTRY_TYPES,
    Department,
    Employee,
    Organization,
    OrganizationMember,
    WorkSite,
)
from app.models.service_record import ServiceRecord
from app.models.user import User
from app.services import audit_service, notification_service

logger = logging.getLogger(__name__)

_ORG_FIELDS = (
    "name",
    "description",
    "industry_type",
    "logo_url",
    "website",
    "phone",
    "email",
    "address",
    "subscription_plan",
    "max_users",
)

_WORK_SITE_FIELDS = (
    "name",
    "type",
    "location",
    "director_id",
    "safety_regulations",
    "operating_hours",
    "contact_phone",
)


# -- Lookups ---------------------------------------------------------------


def get_organization_by_id(organization_id: int) -> Organization | None:
    """Return an organization by primary key, or None if not found."""
    return db.session.get(Organization, organization_id)


def get_active_organization(organization_id: int | None) -> Organization:
    """Return an active organization or raise NotFoundError."""
    org = get_organization_by_id(organization_id) if organization_id else None
    if org is None or not org.is_active:
        raise NotFoundError("Organization not found")
    return org


def _counts_by_org(column, org_ids: list[int], *criteria) -> dict[int, int]:
    """Group-count rows per organization id for the given column."""
    if not org_ids:
        return {}
    rows = (
        db.session.query(column, func.count())
        .filter(column.in_(org_ids), *criteria)
        .group_by(column)
        .all()
    )
    return {org_id: count for org_id, count in rows}


def _validate_industry(industry_type: str | None) -> None:
    if industry_type not in INDUSTRY_TYPES:
        raise ValidationError("Invalid industry type")


# -- Organization queries --------------------------------------------------


def get_organizations(
    page: int = 1,
    per_page: int = 10,
    search: str | None = None,
    industry_type: str | None = None,
) -> tuple[list[dict], int]:
    """
    Return one page of active organizations with aggregate counts.

    Returns:
        Tuple of (list of organization dicts, total matching count).
    """
    query = Organization.query.filter(Organization.is_active == True)  # noqa: E712
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Organization.name.ilike(pattern),
                Organization.description.ilike(pattern),
            )
        )
    if industry_type:
        query = query.filter(Organization.industry_type == industry_type)

    pagination = query.order_by(
        desc(Organization.created_at), desc(Organization.id)
    ).paginate(page=page, per_page=per_page, error_out=False)

    org_ids = [org.id for org in pagination.items]
    employee_counts = _counts_by_org(
        Employee.organization_id, org_ids, Employee.status == "Active"
    )
    department_counts = _counts_by_org(
        Department.organization_id, org_ids, Department.is_active == True  # noqa: E712
    )
    service_counts = _counts_by_org(ServiceRecord.organization_id, org_ids)

    items = []
    for org in pagination.items:
        data = org.to_dict()
        data["employee_count"] = employee_counts.get(org.id, 0)
        data["department_count"] = department_counts.get(org.id, 0)
        data["service_count"] = service_counts.get(org.id, 0)
        items.append(data)
    return items, pagination.total


def get_organization_detail(organization_id: int) -> dict:
    """
    Return an organization with its departments, employees, recent
    services and revenue statistics.

    Raises:
        NotFoundError: If the organization does not exist or is inactive.
    """
    org = get_active_organization(organization_id)

    departments = (
        Department.query.filter_by(organization_id=org.id, is_active=True)
        .order_by(Department.name)
        .all()
    )
    employees = (
        Employee.query.filter_by(organization_id=org.id, status="Active")
        .order_by(Employee.name)
        .all()
    )
    recent_services = (
        ServiceRecord.query.filter_by(organization_id=org.id)
        .order_by(desc(ServiceRecord.created_at), desc(ServiceRecord.id))
        .limit(10)
        .all()
    )

    total, completed, revenue, average = (
        db.session.query(
            func.count(ServiceRecord.id),
            func.count(ServiceRecord.id).filter(ServiceRecord.status == "COMPLETED"),
            func.coalesce(
                func.sum(ServiceRecord.amount).filter(
                    ServiceRecord.status == "COMPLETED"
                ),
                0,
            ),
            func.avg(ServiceRecord.amount),
        )
        .filter(ServiceRecord.organization_id == org.id)
        .one()
    )

    return {
        "organization": org.to_dict(),
        "departments": [dept.to_dict() for dept in departments],
        "employees": [emp.to_dict() for emp in employees],
        "recent_services": [svc.to_dict() for svc in recent_services],
        "statistics": {
            "total_services": total,
            "completed_services": completed,
            "total_revenue": float(revenue or 0),
            "avg_service_amount": float(average) if average is not None else 0.0,
        },
    }


# -- Organization mutations ------------------------------------------------


def create_organization(data: dict, created_by: int | None) -> Organization:
    """
    Create an organization and make its creator an ADMIN member.

    Raises:
        ValidationError: If the name is missing or the industry is unknown.
    """
    if not data.get("name") or not data.get("industry_type"):
        raise ValidationError("Name and industry type are required")
    _validate_industry(data["industry_type"])

    org = Organization(created_by=created_by)
    for field in _ORG_FIELDS:
        if data.get(field) is not None:
            setattr(org, field, data[field])
    db.session.add(org)
    db.session.flush()

    if created_by is not None:
        db.session.add(
            OrganizationMember(organization_id=org.id, user_id=created_by, role="ADMIN")
        )

    audit_service.log_change(
        user_id=created_by,
        action_type="CREATE",
        entity_type="organization",
        entity_id=org.id,
        new_value={"name": org.name, "industry_type": org.industry_type},
    )
    db.session.commit()

    logger.info("Created organization ID %d (%s)", org.id, org.name)
    return org


def update_organization(
    organization_id: int, data: dict, changed_by: int | None
) -> Organization:
    """
    Apply a partial update: keys that are absent or None keep their
    current value.

    Raises:
        NotFoundError:   If the organization does not exist.
        ValidationError: If a new industry type is unknown.
    """
    org = get_active_organization(organization_id)
    if data.get("industry_type") is not None:
        _validate_industry(data["industry_type"])

    previous, new = {}, {}
    for field in _ORG_FIELDS + ("is_active",):
        value = data.get(field)
        if value is None or getattr(org, field) == value:
            continue
        previous[field] = getattr(org, field)
        new[field] = value
        setattr(org, field, value)

    audit_service.log_change(
        user_id=changed_by,
        action_type="UPDATE",
        entity_type="organization",
        entity_id=org.id,
        previous_value=previous,
        new_value=new,
    )
    db.session.commit()

    logger.info("Updated organization ID %d", org.id)
    return org


def delete_organization(organization_id: int, changed_by: int | None) -> None:
    """Soft-delete an organization."""
    org = get_active_organization(organization_id)
    org.is_active = False

    audit_service.log_change(
        user_id=changed_by,
        action_type="DELETE",
        entity_type="organization",
        entity_id=org.id,
        previous_value={"name": org.name, "is_active": True},
    )
    db.session.commit()
    logger.info("Deactivated organization ID %d", org.id)


# -- Members ---------------------------------------------------------------


def get_members(organization_id: int) -> list[OrganizationMember]:
    """Return the active members of an organization, oldest first."""
    get_active_organization(organization_id)
    return (
        OrganizationMember.query.filter_by(organization_id=organization_id, is_active=True)
        .order_by(OrganizationMember.joined_at, OrganizationMember.id)
        .all()
    )


def is_member(organization_id: int, user_id: int) -> bool:
    """Return True if the user is an active member of the organization."""
    return (
        OrganizationMember.query.filter_by(
            organization_id=organization_id, user_id=user_id, is_active=True
        ).first()
        is not None
    )


def add_member(
    organization_id: int,
    user_id: int | None,
    role: str = "USER",
    added_by: int | None = None,
) -> OrganizationMember:
    """
    Add a user to an organization and send them a welcome notification.

    A previously removed membership is reactivated.

    Raises:
        ValidationError: If no user id is given or the user is already
                         an active member.
        NotFoundError:   If the organization or user does not exist.
    """
    if not user_id:
        raise ValidationError("User ID is required")
    org = get_active_organization(organization_id)
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    member = OrganizationMember.query.filter_by(
        organization_id=org.id, user_id=user.id
    ).first()
    if member is not None and member.is_active:
        raise ValidationError("User is already a member of this organization")
    if member is None:
        member = OrganizationMember(organization_id=org.id, user_id=user.id)
        db.session.add(member)
    member.role = role or "USER"
    member.is_active = True
    db.session.flush()

    notification_service.create_notification(
        user_id=user.id,
        organization_id=org.id,
        type="welcome",
        title=f"Welcome to {org.name}",
        message=f"You have been added to {org.name} as {member.role}.",
        commit=False,
    )
    audit_service.log_change(
        user_id=added_by,
        action_type="CREATE",
        entity_type="organization_member",
        entity_id=member.id,
        new_value={"organization_id": org.id, "user_id": user.id, "role": member.role},
    )
    db.session.commit()

    logger.info("Added user ID %d to organization ID %d", user.id, org.id)
    return member


def remove_member(organization_id: int, user_id: int, removed_by: int | None) -> None:
    """Deactivate a membership.

    Raises:
        NotFoundError: If the user is not an active member.
    """
    member = OrganizationMember.query.filter_by(
        organization_id=organization_id, user_id=user_id, is_active=True
    ).first()
    if member is None:
        raise NotFoundError("Member not found")
    member.is_active = False

    audit_service.log_change(
        user_id=removed_by,
        action_type="DELETE",
        entity_type="organization_member",
        entity_id=member.id,
        previous_value={"organization_id": organization_id, "user_id": user_id},
    )
    db.session.commit()
    logger.info("Removed user ID %d from organization ID %d", user_id, organization_id)


# -- Work sites ------------------------------------------------------------


def get_work_sites(organization_id: int, include_inactive: bool = False) -> list[WorkSite]:
    """Return the work sites of an organization ordered by name."""
    get_active_organization(organization_id)
    query = WorkSite.query.filter_by(organization_id=organization_id)
    if not include_inactive:
        query = query.filter(WorkSite.is_active == True)  # noqa: E712
    return query.order_by(WorkSite.name).all()


def _check_director(organization_id: int, director_id: int | None) -> None:
    if director_id is None:
        return
    director = db.session.get(Employee, director_id)
    if director is None or director.organization_id != organization_id:
        raise NotFoundError("Director not found in this organization")


def create_work_site(organization_id: int, data: dict, created_by: int | None) -> WorkSite:
    """
    Create a work site in an organization.

    Raises:
        ValidationError: If name or type is missing or the type is unknown.
        NotFoundError:   If the organization or director does not exist.
    """
    org = get_active_organization(organization_id)
    if not data.get("name") or not data.get("type"):
        raise ValidationError("Name and type are required")
    if data["type"] not in DEPARTMENT_TYPES:
        raise ValidationError(
            f"Invalid work site type. Must be one of: {', '.join(DEPARTMENT_TYPES)}"
        )
    _check_director(org.id, data.get("director_id"))

    site = WorkSite(organization_id=org.id)
    for field in _WORK_SITE_FIELDS:
        if data.get(field) is not None:
            setattr(site, field, data[field])
    db.session.add(site)
    db.session.flush()

    audit_service.log_change(
        user_id=created_by,
        action_type="CREATE",
        entity_type="work_site",
        entity_id=site.id,
        new_value={"name": site.name, "type": site.type},
    )
    db.session.commit()

    logger.info("Created work site ID %d in organization ID %d", site.id, org.id)
    return site


def update_work_site(site_id: int, data: dict, changed_by: int | None) -> WorkSite:
    """Apply a partial update to a work site."""
    site = db.session.get(WorkSite, site_id)
    if site is None or not site.is_active:
        raise NotFoundError("Work site not found")
    if data.get("type") is not None and data["type"] not in DEPARTMENT_TYPES:
        raise ValidationError(
            f"Invalid work site type. Must be one of: {', '.join(DEPARTMENT_TYPES)}"
        )
    _check_director(site.organization_id, data.get("director_id"))

    new = {}
    for field in _WORK_SITE_FIELDS:
        if data.get(field) is not None and getattr(site, field) != data[field]:
            new[field] = data[field]
            setattr(site, field, data[field])

    audit_service.log_change(
        user_id=changed_by,
        action_type="UPDATE",
        entity_type="work_site",
        entity_id=site.id,
        new_value=new,
    )
    db.session.commit()
    logger.info("Updated work site ID %d", site.id)
    return site


def deactivate_work_site(site_id: int, changed_by: int | None) -> None:
    """Soft-delete a work site."""
    site = db.session.get(WorkSite, site_id)
    if site is None or not site.is_active:
        raise NotFoundError("Work site not found")
    site.is_active = False

    audit_service.log_change(
        user_id=changed_by,
        action_type="DELETE",
        entity_type="work_site",
        entity_id=site.id,
        previous_value={"name": site.name},
    )
    db.session.commit()
    logger.info("Deactivated work site ID %d", site.id)
