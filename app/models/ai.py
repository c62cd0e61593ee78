"""
AI assistant models — conversation logs and stored insights.
"""

from app.extensions import db
from app.models.base import iso, num, utcnow

MESSAGE_TYPES = ("user", "assistant", "system")


class AIConversation(db.Model):
    """One message in an assistant conversation.

    A user question and the assistant's answer share a ``session_id``.
    """

    __tablename__ = "ai_conversations"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    session_id = db.Column(db.String(64), nullable=False, index=True)
    message_type = db.Column(
        db.Enum(*MESSAGE_TYPES, name="ai_message_type"), nullable=False
    )
    content = db.Column(db.Text, nullable=False)
    # ``metadata`` is reserved on declarative models.
    extra = db.Column("metadata", db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "organization_id": self.organization_id,
            "session_id": self.session_id,
            "message_type": self.message_type,
            "content": self.content,
            "metadata": self.extra or {},
            "created_at": iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<AIConversation {self.session_id} {self.message_type}>"


class AIInsight(db.Model):
    """A stored analysis produced by the assistant for an organization."""

    __tablename__ = "ai_insights"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    insight_type = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False)
    confidence_score = db.Column(db.Numeric(3, 2), nullable=True)
    data_source = db.Column(db.String(100), nullable=True)
    is_actioned = db.Column(db.Boolean, nullable=False, default=False)
    expires_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "insight_type": self.insight_type,
            "title": self.title,
            "content": self.content,
            "confidence_score": num(self.confidence_score),
            "data_source": self.data_source,
            "is_actioned": self.is_actioned,
            "expires_at": iso(self.expires_at),
            "created_at": iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<AIInsight {self.insight_type} org={self.organization_id}>"
