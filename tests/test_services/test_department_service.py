"""
Tests for department_service and employee_service: the organization's
internal structure and its staff.
"""

import pytest

from app.errors import NotFoundError, ValidationError
from app.services import department_service, employee_service, organization_service


@pytest.fixture
def owner(make_user):
    user, _ = make_user("MANAGER")
    return user


@pytest.fixture
def org(owner):
    return organization_service.create_organization(
        {"name": "Grand Hotel", "industry_type": "HOTEL"}, owner.id
    )


@pytest.fixture
def other_org(owner):
    return organization_service.create_organization(
        {"name": "Elsewhere", "industry_type": "HOTEL"}, owner.id
    )


def _dept(org, name, parent=None, dept_type="OFFICE"):
    data = {"name": name, "type": dept_type, "organization_id": org.id}
    if parent is not None:
        data["parent_department_id"] = parent.id
    return department_service.create_department(data, None)


def _employee(org, name, email, **extra):
    data = {"name": name, "email": email, "role": "Staff", "level": "WORKER",
            "organization_id": org.id}
    data.update(extra)
    return employee_service.create_employee(data, None)


class TestDepartments:
    def test_hierarchy(self, org):
        front = _dept(org, "Front Office")
        _dept(org, "Reception", parent=front)
        _dept(org, "Kitchen")

        tree = department_service.get_hierarchy(org.id)
        assert tree["total_departments"] == 3
        roots = {node["name"]: node for node in tree["hierarchy"]}
        assert set(roots) == {"Front Office", "Kitchen"}
        assert [child["name"] for child in roots["Front Office"]["children"]] == ["Reception"]

    def test_hierarchy_requires_organization(self, db_session):
        with pytest.raises(ValidationError):
            department_service.get_hierarchy(None)

    def test_parent_must_share_organization(self, org, other_org):
        foreign = _dept(other_org, "Foreign")
        with pytest.raises(NotFoundError, match="Parent department not found"):
            _dept(org, "Child", parent=foreign)

    def test_invalid_type(self, org):
        with pytest.raises(ValidationError, match="Invalid department type"):
            _dept(org, "Lab", dept_type="LAB")

    def test_cannot_parent_itself(self, org):
        dept = _dept(org, "Loop")
        with pytest.raises(ValidationError, match="its own parent"):
            department_service.update_department(dept.id, {"parent_department_id": dept.id}, None)

    def test_cannot_move_under_descendant(self, org):
        top = _dept(org, "Operations")
        middle = _dept(org, "Housekeeping", parent=top)
        bottom = _dept(org, "Laundry", parent=middle)
        with pytest.raises(ValidationError, match="sub-departments"):
            department_service.update_department(top.id, {"parent_department_id": bottom.id}, None)
        assert top.parent_department_id is None

    def test_move_under_sibling_branch(self, org):
        left = _dept(org, "Sales")
        right = _dept(org, "Marketing")
        moved = department_service.update_department(right.id, {"parent_department_id": left.id}, None)
        assert moved.parent_department_id == left.id

    def test_listing_counts_active_employees(self, org):
        dept = _dept(org, "Housekeeping")
        _employee(org, "An", "an@example.com", department_id=dept.id)
        resigned = _employee(org, "Binh", "binh@example.com", department_id=dept.id)
        employee_service.resign_employee(resigned.id, None)

        items, total = department_service.get_departments(organization_id=org.id)
        assert total == 1
        assert items[0]["employee_count"] == 1

    def test_detail_statistics(self, org):
        dept = _dept(org, "Spa")
        _employee(org, "Chi", "chi@example.com", department_id=dept.id, salary=100)
        _employee(org, "Dung", "dung@example.com", department_id=dept.id, salary=300,
                  level="MANAGER")

        stats = department_service.get_department_detail(dept.id)["statistics"]
        assert stats["total_employees"] == 2
        assert stats["managers_count"] == 1
        assert stats["avg_salary"] == pytest.approx(200.0)

    def test_deactivate_blocked_by_employees_and_children(self, org):
        parent = _dept(org, "Parent")
        child = _dept(org, "Child", parent=parent)
        with pytest.raises(ValidationError, match="sub-departments"):
            department_service.deactivate_department(parent.id, None)

        _employee(org, "Em", "em@example.com", department_id=child.id)
        with pytest.raises(ValidationError, match="active employees"):
            department_service.deactivate_department(child.id, None)

    def test_deactivate_empty_department(self, org):
        dept = _dept(org, "Empty")
        department_service.deactivate_department(dept.id, None)
        with pytest.raises(NotFoundError):
            department_service.get_department_detail(dept.id)


class TestEmployees:
    def test_create_defaults(self, org):
        employee = _employee(org, "Giang", "GIANG@Example.com", skills="cooking, cleaning")
        assert employee.status == "Active"
        assert employee.email == "giang@example.com"
        assert employee.skills == ["cooking", "cleaning"]

    def test_duplicate_email(self, org):
        _employee(org, "Ha", "ha@example.com")
        with pytest.raises(ValidationError, match="already exists"):
            _employee(org, "Ha 2", "ha@example.com")

    def test_invalid_level(self, org):
        with pytest.raises(ValidationError, match="Invalid level"):
            _employee(org, "Ich", "ich@example.com", level="EMPEROR")

    def test_department_must_share_organization(self, org, other_org):
        foreign = _dept(other_org, "Foreign")
        with pytest.raises(NotFoundError, match="different organization"):
            _employee(org, "Khoa", "khoa@example.com", department_id=foreign.id)

    def test_listing_defaults_to_active(self, org):
        _employee(org, "Lan", "lan@example.com")
        gone = _employee(org, "Mai", "mai@example.com")
        employee_service.resign_employee(gone.id, None)

        assert employee_service.get_employees(organization_id=org.id)[1] == 1
        assert employee_service.get_employees(organization_id=org.id, status="all")[1] == 2

    def test_update(self, org):
        employee = _employee(org, "Nam", "nam@example.com")
        employee_service.update_employee(employee.id, {"role": "Supervisor", "salary": "5000"}, None)
        assert employee.role == "Supervisor"
        assert float(employee.salary) == 5000.0

    def test_stats(self, org):
        _employee(org, "Oanh", "oanh@example.com", salary=100, hire_date="2020-01-01")
        leaver = _employee(org, "Phu", "phu@example.com", salary=300)
        employee_service.resign_employee(leaver.id, None)

        overview = employee_service.get_employee_stats(org.id)["overview"]
        assert overview["total_employees"] == 2
        assert overview["active_employees"] == 1
        assert overview["resigned_employees"] == 1
        assert overview["avg_salary"] == pytest.approx(200.0)

    def test_missing_employee(self, db_session):
        with pytest.raises(NotFoundError, match="Employee not found"):
            employee_service.get_employee_detail(999)
