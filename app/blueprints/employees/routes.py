"""
Routes for the employees blueprint.
"""

from flask import request
from flask_login import current_user, login_required

from app.blueprints.employees import bp
from app.responses import get_json_body, page_args, paginated, success
from app.services import employee_service


def employee_filter_args() -> dict:
    """
    Read the employee list filters from the query string.

    ``status`` defaults to Active; ``status=all`` lists every status.
    """
    return {
        "organization_id": request.args.get("organization_id", type=int),
        "department_id": request.args.get("department_id", type=int),
        "status": request.args.get("status") or "Active",
        "level": request.args.get("level") or None,
        "search": request.args.get("search", "").strip() or None,
    }


@bp.route("/")
@login_required
def list_employees():
    page, limit = page_args()
    items, total = employee_service.get_employees(
        page=page, per_page=limit, **employee_filter_args()
    )
    return paginated("employees", items, page, limit, total)


@bp.route("/stats/overview")
@login_required
def employee_stats():
    return success(
        employee_service.get_employee_stats(
            organization_id=request.args.get("organization_id", type=int),
            department_id=request.args.get("department_id", type=int),
        )
    )


@bp.route("/<int:employee_id>")
@login_required
def get_employee(employee_id):
    """Employee detail plus their 10 most recent assigned services."""
    return success(employee_service.get_employee_detail(employee_id))


@bp.route("/", methods=["POST"])
@login_required
def create_employee():
    employee = employee_service.create_employee(get_json_body(), created_by=current_user.id)
    return success(
        {"employee": employee.to_dict()},
        message="Employee created successfully",
        status_code=201,
    )


@bp.route("/<int:employee_id>", methods=["PUT"])
@login_required
def update_employee(employee_id):
    employee = employee_service.update_employee(
        employee_id, get_json_body(), changed_by=current_user.id
    )
    return success({"employee": employee.to_dict()}, message="Employee updated successfully")


@bp.route("/<int:employee_id>", methods=["DELETE"])
@login_required
def delete_employee(employee_id):
    """Soft delete: the employee is marked Resigned."""
    employee_service.resign_employee(employee_id, changed_by=current_user.id)
    return success(message="Employee deleted successfully")
