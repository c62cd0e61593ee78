"""
In-app notifications delivered to a single user.
"""

from app.extensions import db
from app.models.base import iso, utcnow

NOTIFICATION_PRIORITIES = ("low", "normal", "high", "urgent")


class Notification(db.Model):
    """A message for one user, optionally scoped to an organization."""

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True
    )
    type = db.Column(db.String(50), nullable=False, default="info")
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    data = db.Column(db.JSON, nullable=True)
    priority = db.Column(db.String(20), nullable=False, default="normal")
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime, nullable=True)
    is_email_sent = db.Column(db.Boolean, nullable=False, default=False)
    expires_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "organization_id": self.organization_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data or {},
            "priority": self.priority,
            "is_read": self.is_read,
            "read_at": iso(self.read_at),
            "is_email_sent": self.is_email_sent,
            "expires_at": iso(self.expires_at),
            "created_at": iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Notification {self.type} to user {self.user_id}>"
