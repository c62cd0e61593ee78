"""
Routes for the auth blueprint.

Login and registration return an opaque access/refresh token pair.
Every other endpoint expects ``Authorization: Bearer <access token>``.
"""

from flask_login import current_user, login_required

from app.blueprints.auth import bp
from app.responses import get_json_body, success
from app.services import auth_service, user_service


@bp.route("/register", methods=["POST"])
def register():
    """Create a USER account and sign it in."""
    payload = get_json_body()
    user, tokens = auth_service.register_user(
        email=payload.get("email"),
        password=payload.get("password"),
        first_name=payload.get("first_name"),
        last_name=payload.get("last_name"),
    )
    return success(
        {"user": user.to_dict(), "tokens": tokens},
        message="User registered successfully",
        status_code=201,
    )


@bp.route("/login", methods=["POST"])
def login():
    """Check credentials and issue a token pair."""
    payload = get_json_body()
    user, tokens = auth_service.authenticate(payload.get("email"), payload.get("password"))
    return success({"user": user.to_dict(), "tokens": tokens}, message="Login successful")


@bp.route("/refresh", methods=["POST"])
def refresh():
    payload = get_json_body()
    tokens = auth_service.refresh_session(payload.get("refresh_token"))
    return success({"tokens": tokens}, message="Token refreshed successfully")


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Revoke the session behind the presented access token."""
    auth_service.logout(auth_service.bearer_token(), current_user.id)
    return success(message="Logout successful")


@bp.route("/me")
@login_required
def me():
    """Current user plus their active organization memberships."""
    data = current_user.to_dict()
    data["organizations"] = [
        {
            "organization_id": m.organization_id,
            "organization_name": m.organization.name,
            "role": m.role,
            "joined_at": m.to_dict()["joined_at"],
        }
        for m in current_user.memberships
        if m.is_active and m.organization.is_active
    ]
    return success({"user": data})


@bp.route("/change-password", methods=["POST"])
@login_required
def change_password():
    payload = get_json_body()
    user_service.change_password(
        current_user.id,
        payload.get("current_password"),
        payload.get("new_password"),
    )
    return success(message="Password changed successfully")
