"""
Routes for the departments blueprint.
"""

from flask import request
from flask_login import current_user, login_required

from app.blueprints.departments import bp
from app.responses import get_json_body, page_args, paginated, success
from app.services import department_service


@bp.route("/")
@login_required
def list_departments():
    """Active departments filtered by ``organization_id``, ``search``, ``type``."""
    page, limit = page_args()
    items, total = department_service.get_departments(
        page=page,
        per_page=limit,
        organization_id=request.args.get("organization_id", type=int),
        search=request.args.get("search", "").strip() or None,
        dept_type=request.args.get("type") or None,
    )
    return paginated("departments", items, page, limit, total)


@bp.route("/hierarchy")
@bp.route("/hierarchy/tree")
@login_required
def hierarchy():
    """Nested department tree of one organization."""
    return success(
        department_service.get_hierarchy(request.args.get("organization_id", type=int))
    )


@bp.route("/<int:dept_id>")
@login_required
def get_department(dept_id):
    return success(department_service.get_department_detail(dept_id))


@bp.route("/", methods=["POST"])
@login_required
def create_department():
    dept = department_service.create_department(get_json_body(), created_by=current_user.id)
    return success(
        {"department": dept.to_dict()},
        message="Department created successfully",
        status_code=201,
    )


@bp.route("/<int:dept_id>", methods=["PUT"])
@login_required
def update_department(dept_id):
    dept = department_service.update_department(
        dept_id, get_json_body(), changed_by=current_user.id
    )
    return success({"department": dept.to_dict()}, message="Department updated successfully")


@bp.route("/<int:dept_id>", methods=["DELETE"])
@login_required
def delete_department(dept_id):
    """Deactivate; refused while Active employees or sub-departments remain."""
    department_service.deactivate_department(dept_id, changed_by=current_user.id)
    return success(message="Department deleted successfully")
