"""
Uploaded file metadata.

The bytes live on disk under ``UPLOAD_FOLDER``; this table records who
uploaded what, under which stored name, and the derived category.
"""

from app.extensions import db
from app.models.base import iso, utcnow

FILE_TYPES = ("image", "video", "audio", "document", "spreadsheet", "text", "other")


class FileRecord(db.Model):
    """Metadata for one stored upload."""

    __tablename__ = "files"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    original_name = db.Column(db.String(255), nullable=False)
    file_name = db.Column(db.String(255), unique=True, nullable=False)
    file_path = db.Column(db.String(500), nullable=False)
    mime_type = db.Column(db.String(150), nullable=False)
    file_size = db.Column(db.BigInteger, nullable=False)
    file_type = db.Column(db.String(20), nullable=False, default="other")
    uploaded_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description = db.Column(db.Text, nullable=True)
    tags = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # -- Relationships -----------------------------------------------------
    uploader = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "original_name": self.original_name,
            "file_name": self.file_name,
            "mime_type": self.mime_type,
            "file_size": self.file_size,
            "file_type": self.file_type,
            "uploaded_by": self.uploaded_by,
            "description": self.description,
            "tags": self.tags or [],
            "url": f"/api/upload/file/{self.id}/download",
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<FileRecord {self.file_name}>"
