"""
Service ticket models.

``ServiceRecord`` is a unit of customer work (a booking, a repair, a
delivery...) tracked through PENDING → IN_PROGRESS → COMPLETED or
CANCELLED.  Changes to the title, status and assignee are appended to
``ServiceRecordHistory``.
"""

from app.extensions import db
from app.models.base import iso, num, utcnow
from app.models.organization import INDUSTRY_TYPES

SERVICE_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED", "CANCELLED")

PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")

# Fields whose changes are written to the history table.
TRACKED_FIELDS = ("title", "status", "assigned_to")


class ServiceRecord(db.Model):
    """A service ticket belonging to one organization."""

    __tablename__ = "service_records"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    industry_type = db.Column(
        db.Enum(*INDUSTRY_TYPES, name="industry_type"), nullable=False
    )
    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(50), nullable=True)
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="VND")
    status = db.Column(
        db.Enum(*SERVICE_STATUSES, name="service_status"),
        nullable=False,
        default="PENDING",
    )
    priority = db.Column(
        db.Enum(*PRIORITIES, name="priority"), nullable=False, default="MEDIUM"
    )
    date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)
    completion_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    tags = db.Column(db.JSON, nullable=False, default=list)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    assigned_to = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # -- Relationships -----------------------------------------------------
    organization = db.relationship("Organization")
    assignee = db.relationship("Employee", foreign_keys=[assigned_to])
    history = db.relationship(
        "ServiceRecordHistory",
        back_populates="service_record",
        cascade="all, delete-orphan",
        order_by="ServiceRecordHistory.changed_at.desc()",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "industry_type": self.industry_type,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "amount": num(self.amount),
            "currency": self.currency,
            "status": self.status,
            "priority": self.priority,
            "date": iso(self.date),
            "due_date": iso(self.due_date),
            "completion_date": iso(self.completion_date),
            "notes": self.notes,
            "tags": self.tags or [],
            "organization_id": self.organization_id,
            "assigned_to": self.assigned_to,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<ServiceRecord {self.id} {self.status}>"


class ServiceRecordHistory(db.Model):
    """One field change on a service record."""

    __tablename__ = "service_record_history"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    service_record_id = db.Column(
        db.Integer,
        db.ForeignKey("service_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    field_name = db.Column(db.String(100), nullable=False)
    old_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    changed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    changed_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # -- Relationships -----------------------------------------------------
    service_record = db.relationship("ServiceRecord", back_populates="history")
    changed_by_user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_record_id": self.service_record_id,
            "field_name": self.field_name,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "changed_by": self.changed_by,
            "changed_by_name": (
                self.changed_by_user.full_name if self.changed_by_user else None
            ),
            "changed_at": iso(self.changed_at),
        }

    def __repr__(self) -> str:
        return f"<ServiceRecordHistory {self.field_name} on {self.service_record_id}>"
