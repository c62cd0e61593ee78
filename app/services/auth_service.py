"""
Auth service — password accounts and token sessions.

Handles registration, credential checks, issuing and rotating the
opaque access/refresh token pair stored in ``UserSession``, and
resolving a Bearer token back to its user for Flask-Login.
"""

import logging
import secrets
from datetime import timedelta

from flask import current_app, request
from werkzeug.security import check_password_hash, generate_password_hash

from app.errors import AuthenticationError, ValidationError
from app.extensions import db
from app.models.base import iso, utcnow
from app.models.user import User, UserSession
from app.services import audit_service, user_service

logger = logging.getLogger(__name__)

_INVALID_CREDENTIALS = "Invalid email or password"


def hash_password(password: str) -> str:
    """Hash a plaintext password with pbkdf2:sha256."""
    return generate_password_hash(password, method="pbkdf2:sha256")


# -- Registration and login ------------------------------------------------


def register_user(
    email: str | None,
    password: str | None,
    first_name: str | None,
    last_name: str | None,
    role: str = "USER",
) -> tuple[User, dict]:
    """
    Create a new account and open a session for it.

    Returns:
        Tuple of (user, token dict).

    Raises:
        ValidationError: On missing fields, a short password or a
                         duplicate email.
    """
    if not email or not password or not first_name or not last_name:
        raise ValidationError(
            "Email, password, first name and last name are required"
        )
    min_length = current_app.config["PASSWORD_MIN_LENGTH"]
    if len(password) < min_length:
        raise ValidationError(
            f"Password must be at least {min_length} characters long"
        )

    email = email.strip().lower()
    if user_service.get_user_by_email(email) is not None:
        raise ValidationError("User with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        role=role,
    )
    db.session.add(user)
    db.session.flush()

    audit_service.log_change(
        user_id=user.id,
        action_type="CREATE",
        entity_type="user",
        entity_id=user.id,
        new_value={"email": user.email, "role": user.role},
    )
    tokens = _open_session(user)
    db.session.commit()

    logger.info("Registered user ID %d (%s)", user.id, user.email)
    return user, tokens


def authenticate(email: str | None, password: str | None) -> tuple[User, dict]:
    """
    Check credentials and open a new session.

    Raises:
        ValidationError:     If email or password is missing.
        AuthenticationError: On unknown email, wrong password or an
                             inactive account.
    """
    if not email or not password:
        raise ValidationError("Email and password are required")

    user = user_service.get_user_by_email(email)
    if user is None or not check_password_hash(user.password_hash, password):
        logger.warning("Failed login attempt for %s", email)
        raise AuthenticationError(_INVALID_CREDENTIALS)
    if not user.is_active:
        logger.warning("Login attempt for deactivated user %s", email)
        raise AuthenticationError("Account is deactivated")

    user_service.record_login(user)
    audit_service.log_login(user.id)
    tokens = _open_session(user)
    db.session.commit()

    logger.info("User ID %d logged in", user.id)
    return user, tokens


# -- Token sessions --------------------------------------------------------


def _open_session(user: User) -> dict:
    """Create a ``UserSession`` for ``user`` and return its tokens."""
    now = utcnow()
    session = UserSession(
        user_id=user.id,
        session_token=secrets.token_urlsafe(48),
        refresh_token=secrets.token_urlsafe(48),
        expires_at=now + timedelta(seconds=current_app.config["ACCESS_TOKEN_TTL"]),
        refresh_expires_at=now
        + timedelta(seconds=current_app.config["REFRESH_TOKEN_TTL"]),
        last_accessed=now,
    )
    try:
        session.ip_address = request.remote_addr
        session.user_agent = str(request.user_agent)[:500]
    except RuntimeError:
        # Outside of a request context (e.g., CLI).
        pass
    db.session.add(session)
    db.session.flush()
    return _token_payload(session)


def _token_payload(session: UserSession) -> dict:
    return {
        "access_token": session.session_token,
        "refresh_token": session.refresh_token,
        "token_type": "Bearer",
        "expires_at": iso(session.expires_at),
    }


def refresh_session(refresh_token: str | None) -> dict:
    """
    Rotate both tokens of the session owning ``refresh_token``.

    Raises:
        ValidationError:     If no token is supplied.
        AuthenticationError: If the token is unknown, revoked or expired.
    """
    if not refresh_token:
        raise ValidationError("Refresh token is required")

    session = UserSession.query.filter_by(refresh_token=refresh_token).first()
    now = utcnow()
    if (
        session is None
        or not session.is_active
        or session.refresh_expires_at <= now
        or not session.user.is_active
    ):
        raise AuthenticationError("Invalid or expired refresh token")

    session.session_token = secrets.token_urlsafe(48)
    session.refresh_token = secrets.token_urlsafe(48)
    session.expires_at = now + timedelta(seconds=current_app.config["ACCESS_TOKEN_TTL"])
    session.refresh_expires_at = now + timedelta(
        seconds=current_app.config["REFRESH_TOKEN_TTL"]
    )
    session.last_accessed = now
    db.session.commit()

    logger.info("Rotated tokens for user ID %d", session.user_id)
    return _token_payload(session)


def load_user_from_token(token: str | None) -> User | None:
    """
    Resolve an access token to its user.

    Returns None for unknown, revoked or expired tokens and for
    deactivated users.  Touches ``last_accessed`` on success.
    """
    if not token:
        return None
    session = UserSession.query.filter_by(session_token=token).first()
    if session is None or not session.is_valid():
        return None
    if not session.user.is_active:
        return None
    session.last_accessed = utcnow()
    db.session.commit()
    return session.user


def bearer_token() -> str | None:
    """Return the Bearer token of the current request, if any."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def logout(token: str | None, user_id: int) -> None:
    """Deactivate the session behind ``token`` and record the logout."""
    if token:
        session = UserSession.query.filter_by(session_token=token).first()
        if session is not None:
            session.is_active = False
    audit_service.log_logout(user_id)
    db.session.commit()
    logger.info("User ID %d logged out", user_id)


def cleanup_expired_sessions() -> int:
    """Deactivate sessions whose refresh window has passed.

    Returns:
        Number of sessions deactivated.
    """
    now = utcnow()
    expired = UserSession.query.filter(
        UserSession.is_active == True,  # noqa: E712
        UserSession.refresh_expires_at <= now,
    ).all()
    for session in expired:
        session.is_active = False
    db.session.commit()
    logger.info("Deactivated %d expired sessions", len(expired))
    return len(expired)
