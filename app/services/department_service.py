"""
Department service — the department tree inside an organization.

Departments nest through ``parent_department_id``.  Every reference a
department holds (parent, manager) must point inside its own
organization; the checks here are the single enforcement point for
that rule.
"""

import logging

from sqlalchemy import func

from app.errors import NotFoundError, ValidationError
from app.extensions import db
from app.models.organization import DEPARTMENT_TYPES, Department, Employee
from app.services import audit_service, organization_service

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = (
    "name",
    "type",
    "parent_department_id",
    "manager_id",
    "description",
    "budget",
)


def get_department_by_id(department_id: int) -> Department | None:
    """Return a department by primary key, or None if not found."""
    return db.session.get(Department, department_id)


def _get_active_department(department_id: int) -> Department:
    dept = get_department_by_id(department_id)
    if dept is None or not dept.is_active:
        raise NotFoundError("Department not found")
    return dept


def _validate_type(dept_type: str) -> None:
    if dept_type not in DEPARTMENT_TYPES:
        raise ValidationError(
            f"Invalid department type. Must be one of: {', '.join(DEPARTMENT_TYPES)}"
        )


def _check_parent(organization_id: int, parent_id: int | None) -> None:
    if parent_id is None:
        return
    parent = get_department_by_id(parent_id)
    if parent is None or parent.organization_id != organization_id:
        raise NotFoundError(
            "Parent department not found or belongs to different organization"
        )


def _is_descendant(candidate_id: int, ancestor_id: int) -> bool:
    """True when walking up from ``candidate_id`` reaches ``ancestor_id``."""
    seen = set()
    current = get_department_by_id(candidate_id)
    while current is not None and current.id not in seen:
        if current.id == ancestor_id:
            return True
        seen.add(current.id)
        current = (
            get_department_by_id(current.parent_department_id)
            if current.parent_department_id
            else None
        )
    return False


def _check_manager(organization_id: int, manager_id: int | None) -> None:
    if manager_id is None:
        return
    manager = db.session.get(Employee, manager_id)
    if manager is None or manager.organization_id != organization_id:
        raise NotFoundError("Manager not found or belongs to different organization")


def _active_employee_counts(dept_ids: list[int]) -> dict[int, int]:
    if not dept_ids:
        return {}
    rows = (
        db.session.query(Employee.department_id, func.count(Employee.id))
        .filter(Employee.department_id.in_(dept_ids), Employee.status == "Active")
        .group_by(Employee.department_id)
        .all()
    )
    return dict(rows)


def _serialize(dept: Department, employee_count: int | None = None) -> dict:
    data = dept.to_dict()
    data["manager_name"] = dept.manager.name if dept.manager else None
    data["parent_department_name"] = dept.parent.name if dept.parent else None
    if employee_count is not None:
        data["employee_count"] = employee_count
    return data


# -- Queries ---------------------------------------------------------------


def get_departments(
    page: int = 1,
    per_page: int = 10,
    organization_id: int | None = None,
    search: str | None = None,
    dept_type: str | None = None,
) -> tuple[list[dict], int]:
    """
    Return one page of active departments ordered by name.

    Each item carries ``manager_name`` and the number of Active
    employees as ``employee_count``.
    """
    query = Department.query.filter(Department.is_active == True)  # noqa: E712
    if organization_id:
        query = query.filter(Department.organization_id == organization_id)
    if search:
        query = query.filter(Department.name.ilike(f"%{search}%"))
    if dept_type:
        query = query.filter(Department.type == dept_type)

    pagination = query.order_by(Department.name, Department.id).paginate(
        page=page, per_page=per_page, error_out=False
    )
    counts = _active_employee_counts([dept.id for dept in pagination.items])
    items = [_serialize(dept, counts.get(dept.id, 0)) for dept in pagination.items]
    return items, pagination.total


def get_department_detail(department_id: int) -> dict:
    """
    Return a department with its active employees, active
    sub-departments and salary/level statistics.

    Raises:
        NotFoundError: If the department does not exist or is inactive.
    """
    dept = _get_active_department(department_id)

    employees = (
        Employee.query.filter_by(department_id=dept.id, status="Active")
        .order_by(Employee.name)
        .all()
    )
    sub_departments = (
        Department.query.filter_by(parent_department_id=dept.id, is_active=True)
        .order_by(Department.name)
        .all()
    )

    salaries = [float(emp.salary) for emp in employees if emp.salary is not None]
    levels = [emp.level for emp in employees]
    statistics = {
        "total_employees": len(employees),
        "managers_count": levels.count("MANAGER"),
        "specialists_count": levels.count("SPECIALIST"),
        "workers_count": levels.count("WORKER"),
        "avg_salary": sum(salaries) / len(salaries) if salaries else 0.0,
        "total_salary_cost": sum(salaries),
    }

    return {
        "department": _serialize(dept, len(employees)),
        "employees": [emp.to_dict() for emp in employees],
        "sub_departments": [sub.to_dict() for sub in sub_departments],
        "statistics": statistics,
    }


def get_hierarchy(organization_id: int | None) -> dict:
    """
    Return the active departments of an organization as a tree.

    Raises:
        ValidationError: If no organization id is given.
    """
    if not organization_id:
        raise ValidationError("Organization ID is required")

    departments = (
        Department.query.filter_by(organization_id=organization_id, is_active=True)
        .order_by(Department.name)
        .all()
    )
    counts = _active_employee_counts([dept.id for dept in departments])

    nodes = {}
    for dept in departments:
        node = _serialize(dept, counts.get(dept.id, 0))
        node["children"] = []
        nodes[dept.id] = node

    roots = []
    for dept in departments:
        parent = nodes.get(dept.parent_department_id)
        if parent is not None:
            parent["children"].append(nodes[dept.id])
        else:
            # Inactive or missing parents promote the child to a root.
            roots.append(nodes[dept.id])

    return {"hierarchy": roots, "total_departments": len(departments)}


# -- Mutations -------------------------------------------------------------


def create_department(data: dict, created_by: int | None) -> Department:
    """
    Create a department.

    Raises:
        ValidationError: If name, type or organization is missing, or the
                         type is unknown.
        NotFoundError:   If the organization, parent or manager does not
                         exist within the organization.
    """
    if not data.get("name") or not data.get("type") or not data.get("organization_id"):
        raise ValidationError("Name, type, and organization ID are required")
    _validate_type(data["type"])
    org = organization_service.get_active_organization(data["organization_id"])
    _check_parent(org.id, data.get("parent_department_id"))
    _check_manager(org.id, data.get("manager_id"))

    dept = Department(organization_id=org.id)
    for field in _UPDATABLE_FIELDS:
        if data.get(field) is not None:
            setattr(dept, field, data[field])
    db.session.add(dept)
    db.session.flush()

    audit_service.log_change(
        user_id=created_by,
        action_type="CREATE",
        entity_type="department",
        entity_id=dept.id,
        new_value={"name": dept.name, "type": dept.type, "organization_id": org.id},
    )
    db.session.commit()

    logger.info("Created department ID %d (%s)", dept.id, dept.name)
    return dept


def update_department(department_id: int, data: dict, changed_by: int | None) -> Department:
    """
    Apply a partial update to a department.

    Raises:
        NotFoundError:   If the department, parent or manager is not found.
        ValidationError: If the department would become its own parent
                         or ancestor, or the type is unknown.
    """
    dept = _get_active_department(department_id)

    if data.get("type") is not None:
        _validate_type(data["type"])
    parent_id = data.get("parent_department_id")
    if parent_id is not None:
        if parent_id == dept.id:
            raise ValidationError("Department cannot be its own parent")
        _check_parent(dept.organization_id, parent_id)
        if _is_descendant(parent_id, dept.id):
            raise ValidationError("Department cannot be moved under one of its sub-departments")
    _check_manager(dept.organization_id, data.get("manager_id"))

    previous, new = {}, {}
    for field in _UPDATABLE_FIELDS:
        value = data.get(field)
        if value is None or getattr(dept, field) == value:
            continue
        previous[field] = getattr(dept, field)
        new[field] = value
        setattr(dept, field, value)

    audit_service.log_change(
        user_id=changed_by,
        action_type="UPDATE",
        entity_type="department",
        entity_id=dept.id,
        previous_value=previous,
        new_value=new,
    )
    db.session.commit()

    logger.info("Updated department ID %d", dept.id)
    return dept


def deactivate_department(department_id: int, changed_by: int | None) -> None:
    """
    Soft-delete a department.

    Raises:
        NotFoundError:   If the department does not exist.
        ValidationError: If it still has Active employees or active
                         sub-departments.
    """
    dept = _get_active_department(department_id)

    active_employees = Employee.query.filter_by(
        department_id=dept.id, status="Active"
    ).count()
    if active_employees:
        raise ValidationError("Cannot deactivate department with active employees")

    active_children = Department.query.filter_by(
        parent_department_id=dept.id, is_active=True
    ).count()
    if active_children:
        raise ValidationError(
            "Cannot deactivate department with active sub-departments"
        )

    dept.is_active = False
    audit_service.log_change(
        user_id=changed_by,
        action_type="DELETE",
        entity_type="department",
        entity_id=dept.id,
        previous_value={"name": dept.name, "is_active": True},
    )
    db.session.commit()
    logger.info("Deactivated department ID %d", dept.id)
