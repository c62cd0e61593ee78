"""
Audit trail model.
"""

import json

from app.extensions import db
from app.models.base import iso, utcnow

AUDIT_ACTIONS = ("CREATE", "UPDATE", "DELETE", "LOGIN", "LOGOUT")


def _decode(text: str | None):
    return json.loads(text) if text else None


class AuditLog(db.Model):
    """
    One change made through the service layer.

    ``previous_value`` and ``new_value`` hold JSON text:
      - CREATE: only ``new_value``, with the fields that were set.
      - UPDATE: both, restricted to the fields that changed.
      - DELETE: only ``previous_value``, a snapshot of the removed row.
    LOGIN and LOGOUT rows carry neither.
    """

    __tablename__ = "audit_log"

    id = db.Column(
        db.BigInteger().with_variant(db.Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    action_type = db.Column(db.String(50), nullable=False)
    entity_type = db.Column(db.String(100), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=True)
    previous_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    user = db.relationship("User", lazy="joined")

    def to_dict(self) -> dict:
        """Snapshots are returned decoded, as JSON objects."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_email": self.user.email if self.user else None,
            "action_type": self.action_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "previous_value": _decode(self.previous_value),
            "new_value": _decode(self.new_value),
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<AuditLog {self.action_type} {self.entity_type}:{self.entity_id}>"
