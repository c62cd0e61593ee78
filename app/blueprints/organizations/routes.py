"""
Routes for the organizations blueprint.

Covers organization CRUD, membership management and the work sites
nested under ``/<org_id>/work-sites``.
"""

from flask import request
from flask_login import current_user, login_required

from app.blueprints.organizations import bp
from app.responses import get_json_body, page_args, paginated, success
from app.services import organization_service


# =========================================================================
# Organizations
# =========================================================================


@bp.route("/")
@login_required
def list_organizations():
    """Active organizations with employee/department/service counts."""
    page, limit = page_args()
    items, total = organization_service.get_organizations(
        page=page,
        per_page=limit,
        search=request.args.get("search", "").strip() or None,
        industry_type=request.args.get("industry_type") or None,
    )
    return paginated("organizations", items, page, limit, total)


@bp.route("/<int:org_id>")
@login_required
def get_organization(org_id):
    return success(organization_service.get_organization_detail(org_id))


@bp.route("/", methods=["POST"])
@login_required
def create_organization():
    org = organization_service.create_organization(
        get_json_body(), created_by=current_user.id
    )
    return success(
        {"organization": org.to_dict()},
        message="Organization created successfully",
        status_code=201,
    )


@bp.route("/<int:org_id>", methods=["PUT"])
@login_required
def update_organization(org_id):
    org = organization_service.update_organization(
        org_id, get_json_body(), changed_by=current_user.id
    )
    return success(
        {"organization": org.to_dict()}, message="Organization updated successfully"
    )


@bp.route("/<int:org_id>", methods=["DELETE"])
@login_required
def delete_organization(org_id):
    organization_service.delete_organization(org_id, changed_by=current_user.id)
    return success(message="Organization deleted successfully")


# =========================================================================
# Members
# =========================================================================


@bp.route("/<int:org_id>/members")
@login_required
def list_members(org_id):
    members = organization_service.get_members(org_id)
    return success({"members": [m.to_dict() for m in members]})


@bp.route("/<int:org_id>/members", methods=["POST"])
@login_required
def add_member(org_id):
    """Add a user by ``user_id`` with an optional org-level ``role``."""
    payload = get_json_body()
    member = organization_service.add_member(
        org_id,
        payload.get("user_id"),
        role=payload.get("role") or "USER",
        added_by=current_user.id,
    )
    return success(
        {"member": member.to_dict()},
        message="Member added successfully",
        status_code=201,
    )


@bp.route("/<int:org_id>/members/<int:user_id>", methods=["DELETE"])
@login_required
def remove_member(org_id, user_id):
    organization_service.remove_member(org_id, user_id, removed_by=current_user.id)
    return success(message="Member removed successfully")


# =========================================================================
# Work Sites
# =========================================================================


@bp.route("/<int:org_id>/work-sites")
@login_required
def list_work_sites(org_id):
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    sites = organization_service.get_work_sites(org_id, include_inactive=include_inactive)
    return success({"work_sites": [site.to_dict() for site in sites]})


@bp.route("/<int:org_id>/work-sites", methods=["POST"])
@login_required
def create_work_site(org_id):
    site = organization_service.create_work_site(
        org_id, get_json_body(), created_by=current_user.id
    )
    return success(
        {"work_site": site.to_dict()},
        message="Work site created successfully",
        status_code=201,
    )


@bp.route("/<int:org_id>/work-sites/<int:site_id>", methods=["PUT"])
@login_required
def update_work_site(org_id, site_id):  # pylint: disable=unused-argument
    site = organization_service.update_work_site(
        site_id, get_json_body(), changed_by=current_user.id
    )
    return success({"work_site": site.to_dict()}, message="Work site updated successfully")


@bp.route("/<int:org_id>/work-sites/<int:site_id>", methods=["DELETE"])
@login_required
def deactivate_work_site(org_id, site_id):  # pylint: disable=unused-argument
    organization_service.deactivate_work_site(site_id, changed_by=current_user.id)
    return success(message="Work site deactivated successfully")
