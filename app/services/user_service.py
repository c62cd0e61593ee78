"""
User service — user lookup, listing, profile and role changes.

Account creation and credential checks live in ``auth_service``; this
module manages existing user records on behalf of administrators.
"""

import logging

from flask import current_app
from sqlalchemy import desc, or_
from werkzeug.security import check_password_hash, generate_password_hash

from app.errors import NotFoundError, ValidationError
from app.extensions import db
from app.models.base import utcnow
from app.models.user import USER_ROLES, User
from app.services import audit_service

logger = logging.getLogger(__name__)

# Fields an administrator may change through ``update_user``.
_UPDATABLE_FIELDS = ("first_name", "last_name", "role", "is_active")


# -- User lookup -----------------------------------------------------------


def get_user_by_id(user_id: int) -> User | None:
    """Return a user by primary key, or None if not found."""
    return db.session.get(User, user_id)


def get_user_or_404(user_id: int) -> User:
    """Return a user by primary key or raise NotFoundError."""
    user = get_user_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def get_user_by_email(email: str) -> User | None:
    """Return a user by email address (case-insensitive)."""
    return User.query.filter(User.email == (email or "").strip().lower()).first()


def get_all_users(
    page: int = 1,
    per_page: int = 10,
    search: str | None = None,
    role: str | None = None,
):
    """
    Return a paginated list of users, newest first.

    Args:
        page:     Page number (1-indexed).
        per_page: Records per page.
        search:   Case-insensitive match on first name, last name or email.
        role:     Restrict to one role.

    Returns:
        A SQLAlchemy pagination object.
    """
    query = User.query.order_by(desc(User.created_at), desc(User.id))
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.email.ilike(pattern),
            )
        )
    if role:
        query = query.filter(User.role == role)
    return query.paginate(page=page, per_page=per_page, error_out=False)


# -- User modification -----------------------------------------------------


def update_user(user_id: int, changes: dict, changed_by: int | None = None) -> User:
    """
    Apply a partial update to a user's profile, role or active flag.

    Only keys present in ``changes`` are touched.

    Raises:
        NotFoundError:   If the user does not exist.
        ValidationError: If the role is not a known role.
    """
    user = get_user_or_404(user_id)

    if "role" in changes and changes["role"] not in USER_ROLES:
        raise ValidationError(
            f"Invalid role. Must be one of: {', '.join(USER_ROLES)}"
        )

    previous, new = {}, {}
    for field in _UPDATABLE_FIELDS:
        if field not in changes or changes[field] is None:
            continue
        value = changes[field]
        if field == "is_active":
            value = bool(value)
        if getattr(user, field) != value:
            previous[field] = getattr(user, field)
            new[field] = value
            setattr(user, field, value)

    if new:
        audit_service.log_change(
            user_id=changed_by,
            action_type="UPDATE",
            entity_type="user",
            entity_id=user.id,
            previous_value=previous,
            new_value=new,
        )
    db.session.commit()
    logger.info("Updated user ID %d fields=%s", user.id, sorted(new))
    return user


def deactivate_user(user_id: int, changed_by: int | None = None) -> User:
    """Soft-delete a user and revoke their open sessions."""
    user = get_user_or_404(user_id)
    user.is_active = False
    for session in user.sessions.filter_by(is_active=True):
        session.is_active = False

    audit_service.log_change(
        user_id=changed_by,
        action_type="DELETE",
        entity_type="user",
        entity_id=user.id,
        previous_value={"is_active": True},
        new_value={"is_active": False},
    )
    db.session.commit()
    logger.info("Deactivated user ID %d", user.id)
    return user


def validate_new_password(new_password: str | None) -> None:
    """Raise ValidationError if ``new_password`` is too short."""
    min_length = current_app.config["PASSWORD_MIN_LENGTH"]
    if not new_password or len(new_password) < min_length:
        raise ValidationError(
            f"New password must be at least {min_length} characters long"
        )


def change_password(
    user_id: int,
    current_password: str | None,
    new_password: str | None,
    changed_by: int | None = None,
) -> None:
    """
    Replace a user's password after verifying the current one.

    Raises:
        ValidationError: If either password is missing, the new one is
                         too short, or the current one is wrong.
        NotFoundError:   If the user does not exist.
    """
    if not current_password or not new_password:
        raise ValidationError("Current password and new password are required")
    validate_new_password(new_password)

    user = get_user_or_404(user_id)
    if not check_password_hash(user.password_hash, current_password):
        raise ValidationError("Current password is incorrect")

    user.password_hash = generate_password_hash(new_password, method="pbkdf2:sha256")
    audit_service.log_change(
        user_id=changed_by if changed_by is not None else user.id,
        action_type="UPDATE",
        entity_type="user.password",
        entity_id=user.id,
    )
    db.session.commit()
    logger.info("Password changed for user ID %d", user.id)


def record_login(user: User) -> None:
    """Stamp the user's last login time (caller commits)."""
    user.last_login = utcnow()
