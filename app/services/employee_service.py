"""
Employee service — HR records within an organization.

An employee's department and work site must belong to the employee's
organization.  Deleting an employee marks them Resigned so historic
service assignments stay intact.
"""

import logging
from datetime import timedelta

from sqlalchemy import desc, func, or_

from app.errors import NotFoundError, ValidationError
from app.extensions import db
from app.models.base import utcnow
from app.models.organization import (
    EMPLOYEE_LEVELS,
    EMPLOYEE_STATUSES,
    Department,
    Employee,
    WorkSite,
)
from app.models.service_record import ServiceRecord
from app.services import audit_service, organization_service
from app.validators import parse_choice, parse_date, parse_number, parse_string_list, validate_email

logger = logging.getLogger(__name__)

_SIMPLE_FIELDS = (
    "name",
    "phone",
    "role",
    "job_description",
    "avatar_url",
    "emergency_contact",
    "user_id",
)


def get_employee_by_id(employee_id: int) -> Employee | None:
    """Return an employee by primary key, or None if not found."""
    return db.session.get(Employee, employee_id)


def _get_employee(employee_id: int) -> Employee:
    employee = get_employee_by_id(employee_id)
    if employee is None:
        raise NotFoundError("Employee not found")
    return employee


def _check_placement(organization_id: int, department_id, work_site_id) -> None:
    """Raise NotFoundError if a department/work site is outside the org."""
    if department_id is not None:
        dept = db.session.get(Department, department_id)
        if dept is None or dept.organization_id != organization_id:
            raise NotFoundError("Department not found or belongs to different organization")
    if work_site_id is not None:
        site = db.session.get(WorkSite, work_site_id)
        if site is None or site.organization_id != organization_id:
            raise NotFoundError("Work site not found or belongs to different organization")


def _clean(data: dict) -> dict:
    """Normalize typed fields present in ``data``."""
    cleaned = {}
    for field in _SIMPLE_FIELDS:
        if data.get(field) is not None:
            cleaned[field] = data[field]
    if data.get("email") is not None:
        cleaned["email"] = validate_email(data["email"])
    if data.get("level") is not None:
        cleaned["level"] = parse_choice(data["level"], "level", EMPLOYEE_LEVELS)
    if data.get("status") is not None:
        cleaned["status"] = parse_choice(data["status"], "status", EMPLOYEE_STATUSES)
    if data.get("hire_date") is not None:
        cleaned["hire_date"] = parse_date(data["hire_date"], "hire_date")
    if data.get("salary") is not None:
        cleaned["salary"] = parse_number(data["salary"], "salary", minimum=0)
    if data.get("skills") is not None:
        cleaned["skills"] = parse_string_list(data["skills"], "skills")
    for field in ("department_id", "work_site_id"):
        if data.get(field) is not None:
            cleaned[field] = data[field]
    return cleaned


def _ensure_unique_email(email: str, exclude_id: int | None = None) -> None:
    query = Employee.query.filter(Employee.email == email)
    if exclude_id is not None:
        query = query.filter(Employee.id != exclude_id)
    if query.first() is not None:
        raise ValidationError("Employee with this email already exists")


def _serialize(employee: Employee) -> dict:
    data = employee.to_dict()
    data["department_name"] = employee.department.name if employee.department else None
    data["work_site_name"] = employee.work_site.name if employee.work_site else None
    data["organization_name"] = (
        employee.organization.name if employee.organization else None
    )
    return data


# -- Queries ---------------------------------------------------------------


def _filtered_query(
    organization_id: int | None = None,
    department_id: int | None = None,
    status: str | None = "Active",
    level: str | None = None,
    search: str | None = None,
):
    query = Employee.query
    if organization_id:
        query = query.filter(Employee.organization_id == organization_id)
    if department_id:
        query = query.filter(Employee.department_id == department_id)
    if status and status != "all":
        query = query.filter(Employee.status == status)
    if level:
        query = query.filter(Employee.level == level)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Employee.name.ilike(pattern),
                Employee.email.ilike(pattern),
                Employee.role.ilike(pattern),
            )
        )
    return query.order_by(Employee.name, Employee.id)


def get_employees(page: int = 1, per_page: int = 10, **filters) -> tuple[list[dict], int]:
    """
    Return one page of employees ordered by name.

    Keyword filters: organization_id, department_id, status, level,
    search.  ``status`` defaults to Active; pass ``"all"`` (or None) to
    include every status.
    """
    pagination = _filtered_query(**filters).paginate(
        page=page, per_page=per_page, error_out=False
    )
    return [_serialize(emp) for emp in pagination.items], pagination.total


def get_all_employees(**filters) -> list[Employee]:
    """Return every matching employee ordered by name (used by exports)."""
    return _filtered_query(**filters).all()


def get_employee_detail(employee_id: int) -> dict:
    """Return an employee with their 10 most recent assigned services."""
    employee = _get_employee(employee_id)
    recent = (
        ServiceRecord.query.filter_by(assigned_to=employee.id)
        .order_by(desc(ServiceRecord.created_at), desc(ServiceRecord.id))
        .limit(10)
        .all()
    )
    return {
        "employee": _serialize(employee),
        "recent_services": [svc.to_dict() for svc in recent],
    }


def get_employee_stats(
    organization_id: int | None = None, department_id: int | None = None
) -> dict:
    """
    Summarize headcount and salary, optionally within one organization
    or department.
    """
    criteria = []
    if organization_id:
        criteria.append(Employee.organization_id == organization_id)
    if department_id:
        criteria.append(Employee.department_id == department_id)

    employees = Employee.query.filter(*criteria).all()
    status_counts = {status: 0 for status in EMPLOYEE_STATUSES}
    level_counts = {level: 0 for level in EMPLOYEE_LEVELS}
    salaries = []
    for emp in employees:
        status_counts[emp.status] = status_counts.get(emp.status, 0) + 1
        level_counts[emp.level] = level_counts.get(emp.level, 0) + 1
        if emp.salary is not None:
            salaries.append(float(emp.salary))

    by_department_rows = (
        db.session.query(
            Department.id,
            Department.name,
            func.count(Employee.id),
            func.avg(Employee.salary),
        )
        .join(Employee, Employee.department_id == Department.id)
        .filter(Employee.status == "Active", *criteria)
        .group_by(Department.id, Department.name)
        .order_by(desc(func.count(Employee.id)))
        .all()
    )

    since = (utcnow() - timedelta(days=182)).date()
    recent_hires = (
        Employee.query.filter(Employee.hire_date >= since, *criteria)
        .order_by(desc(Employee.hire_date), desc(Employee.id))
        .limit(10)
        .all()
    )

    return {
        "overview": {
            "total_employees": len(employees),
            "active_employees": status_counts.get("Active", 0),
            "on_leave_employees": status_counts.get("OnLeave", 0),
            "resigned_employees": status_counts.get("Resigned", 0),
            "avg_salary": sum(salaries) / len(salaries) if salaries else 0.0,
            "total_salary_cost": sum(salaries),
            "by_status": status_counts,
        },
        "by_department": [
            {
                "department_id": dept_id,
                "department_name": name,
                "employee_count": count,
                "avg_salary": float(avg) if avg is not None else 0.0,
            }
            for dept_id, name, count, avg in by_department_rows
        ],
        "by_level": [
            {"level": level, "count": count}
            for level, count in level_counts.items()
            if count
        ],
        "recent_hires": [_serialize(emp) for emp in recent_hires],
    }


# -- Mutations -------------------------------------------------------------


def create_employee(data: dict, created_by: int | None) -> Employee:
    """
    Create an employee.

    Raises:
        ValidationError: On missing required fields, an invalid level or
                         a duplicate email.
        NotFoundError:   If the organization, department or work site is
                         not found within the organization.
    """
    required = ("name", "email", "role", "level", "organization_id")
    if any(not data.get(field) for field in required):
        raise ValidationError(
            "Name, email, role, level, and organization ID are required"
        )
    cleaned = _clean(data)
    org = organization_service.get_active_organization(data["organization_id"])
    _check_placement(org.id, cleaned.get("department_id"), cleaned.get("work_site_id"))
    _ensure_unique_email(cleaned["email"])

    employee = Employee(organization_id=org.id, status="Active", skills=[])
    for field, value in cleaned.items():
        setattr(employee, field, value)
    db.session.add(employee)
    db.session.flush()

    audit_service.log_change(
        user_id=created_by,
        action_type="CREATE",
        entity_type="employee",
        entity_id=employee.id,
        new_value={"name": employee.name, "email": employee.email, "level": employee.level},
    )
    db.session.commit()

    logger.info("Created employee ID %d (%s)", employee.id, employee.email)
    return employee


def update_employee(employee_id: int, data: dict, changed_by: int | None) -> Employee:
    """
    Apply a partial update to an employee.

    Raises:
        NotFoundError:   If the employee or a referenced placement is not
                         found within the organization.
        ValidationError: On invalid values or a duplicate email.
    """
    employee = _get_employee(employee_id)
    cleaned = _clean(data)
    _check_placement(
        employee.organization_id,
        cleaned.get("department_id"),
        cleaned.get("work_site_id"),
    )
    if "email" in cleaned:
        _ensure_unique_email(cleaned["email"], exclude_id=employee.id)

    previous, new = {}, {}
    for field, value in cleaned.items():
        if getattr(employee, field) == value:
            continue
        previous[field] = getattr(employee, field)
        new[field] = value
        setattr(employee, field, value)

    audit_service.log_change(
        user_id=changed_by,
        action_type="UPDATE",
        entity_type="employee",
        entity_id=employee.id,
        previous_value=previous,
        new_value=new,
    )
    db.session.commit()

    logger.info("Updated employee ID %d", employee.id)
    return employee


def resign_employee(employee_id: int, changed_by: int | None) -> Employee:
    """Soft-delete an employee by setting their status to Resigned."""
    employee = _get_employee(employee_id)
    previous_status = employee.status
    employee.status = "Resigned"

    audit_service.log_change(
        user_id=changed_by,
        action_type="DELETE",
        entity_type="employee",
        entity_id=employee.id,
        previous_value={"status": previous_status},
        new_value={"status": "Resigned"},
    )
    db.session.commit()
    logger.info("Employee ID %d marked Resigned", employee.id)
    return employee
