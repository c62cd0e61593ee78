"""
Authentication models — application users and their login sessions.

Passwords are stored as Werkzeug pbkdf2 hashes.  API clients
authenticate with an opaque access token issued at login and stored in
``UserSession``; the refresh token lets a client rotate both tokens
without re-entering credentials.
"""

from flask_login import UserMixin

from app.extensions import db
from app.models.base import iso, utcnow

# Ordered from most to least privileged.
USER_ROLES = ("SUPER_ADMIN", "ADMIN", "MANAGER", "LEADER", "SPECIALIST", "USER")

# Roles that may administer users and see every user's uploads.
ADMIN_ROLES = ("SUPER_ADMIN", "ADMIN")


class User(UserMixin, db.Model):
    """An application account."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    role = db.Column(
        db.Enum(*USER_ROLES, name="user_role"), nullable=False, default="USER"
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    email_verified = db.Column(db.Boolean, nullable=False, default=False)
    last_login = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # -- Relationships -----------------------------------------------------
    sessions = db.relationship(
        "UserSession", back_populates="user", lazy="dynamic", cascade="all, delete-orphan"
    )
    memberships = db.relationship("OrganizationMember", back_populates="user")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def has_role(self, *role_names: str) -> bool:
        """Return True if the user holds one of ``role_names``.

        SUPER_ADMIN passes every role check.
        """
        return self.role == "SUPER_ADMIN" or self.role in role_names

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
            "is_active": self.is_active,
            "email_verified": self.email_verified,
            "last_login": iso(self.last_login),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role}>"


class UserSession(db.Model):
    """
    One issued token pair.

    A session is usable while ``is_active`` is True and ``expires_at``
    is in the future; the refresh token stays valid until
    ``refresh_expires_at``.
    """

    __tablename__ = "user_sessions"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_token = db.Column(db.String(128), unique=True, nullable=False)
    refresh_token = db.Column(db.String(128), unique=True, nullable=False)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    refresh_expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    last_accessed = db.Column(db.DateTime, nullable=False, default=utcnow)

    # -- Relationships -----------------------------------------------------
    user = db.relationship("User", back_populates="sessions")

    def is_valid(self, now=None) -> bool:
        now = now or utcnow()
        return self.is_active and self.expires_at > now

    def __repr__(self) -> str:
        return f"<UserSession user={self.user_id} active={self.is_active}>"
