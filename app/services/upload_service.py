"""
Upload service — store uploaded files on disk and track their metadata.

Stored names are ``<secure-basename>-<uuid4><ext>`` so two uploads of
the same file never collide.  If the database insert fails the stored
bytes are removed again, keeping the folder and the ``files`` table in
step.
"""

import logging
import os
import uuid

from flask import current_app
from sqlalchemy import desc, func
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from app.errors import NotFoundError, PermissionDenied, ValidationError
from app.extensions import db
from app.models.file import FILE_TYPES, FileRecord
from app.models.user import User
from app.services import audit_service
from app.validators import parse_string_list

logger = logging.getLogger(__name__)


def get_file_type(mime_type: str) -> str:
    """Map a MIME type to one of the coarse ``FILE_TYPES`` categories."""
    mime_type = (mime_type or "").lower()
    if mime_type.startswith("image/"):
        return "image"
    if mime_type.startswith("video/"):
        return "video"
    if mime_type.startswith("audio/"):
        return "audio"
    # OOXML spreadsheet types contain "officedocument"; check them first.
    if "excel" in mime_type or "spreadsheet" in mime_type:
        return "spreadsheet"
    if "pdf" in mime_type or "word" in mime_type or "document" in mime_type:
        return "document"
    if mime_type.startswith("text/"):
        return "text"
    return "other"


def _upload_folder() -> str:
    folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(folder, exist_ok=True)
    return folder


def _stored_name(original_name: str) -> str:
    """Return ``<safe-base>-<uuid><ext>`` for an uploaded filename."""
    base, ext = os.path.splitext(original_name)
    safe_base = secure_filename(base) or "file"
    safe_ext = secure_filename(ext.lstrip("."))
    suffix = f".{safe_ext.lower()}" if safe_ext else ""
    return f"{safe_base}-{uuid.uuid4()}{suffix}"


def _validate(upload: FileStorage) -> int:
    """Check MIME type and size; return the size in bytes."""
    if upload is None or not upload.filename:
        raise ValidationError("No file uploaded")

    allowed = current_app.config["UPLOAD_ALLOWED_MIME_TYPES"]
    if upload.mimetype not in allowed:
        raise ValidationError(f"File type {upload.mimetype or 'unknown'} is not allowed")

    upload.stream.seek(0, os.SEEK_END)
    size = upload.stream.tell()
    upload.stream.seek(0)

    max_size = current_app.config["UPLOAD_MAX_FILE_SIZE"]
    if size > max_size:
        raise ValidationError(
            f"File too large (maximum {max_size / (1024 * 1024):.0f}MB)"
        )
    if size == 0:
        raise ValidationError("File is empty")
    return size


def _remove_from_disk(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.error("Could not remove stored file %s: %s", path, exc)


def _store(upload: FileStorage, user_id: int, description: str | None = None) -> FileRecord:
    """Validate, write and record one upload (caller commits)."""
    size = _validate(upload)
    file_name = _stored_name(upload.filename)
    path = os.path.join(_upload_folder(), file_name)
    upload.save(path)

    record = FileRecord(
        original_name=upload.filename,
        file_name=file_name,
        file_path=path,
        mime_type=upload.mimetype,
        file_size=size,
        file_type=get_file_type(upload.mimetype),
        uploaded_by=user_id,
        description=description,
        tags=[],
    )
    try:
        db.session.add(record)
        db.session.flush()
    except SQLAlchemyError:
        db.session.rollback()
        _remove_from_disk(path)
        raise
    return record


# -- Uploads ---------------------------------------------------------------


def save_upload(upload: FileStorage, user_id: int, description: str | None = None) -> FileRecord:
    """
    Store a single uploaded file.

    Raises:
        ValidationError: If the file is missing, too large or of a
                         disallowed type.
    """
    record = _store(upload, user_id, description)
    try:
        audit_service.log_change(
            user_id=user_id,
            action_type="CREATE",
            entity_type="file",
            entity_id=record.id,
            new_value={"original_name": record.original_name, "file_size": record.file_size},
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        _remove_from_disk(record.file_path)
        raise

    logger.info("Stored upload ID %d (%s, %d bytes)", record.id, record.file_name, record.file_size)
    return record


def save_uploads(uploads: list[FileStorage], user_id: int) -> tuple[list[FileRecord], list[dict]]:
    """
    Store several files; invalid ones are reported, not fatal.

    Returns:
        Tuple of (stored records, list of ``{"file", "error"}`` dicts).

    Raises:
        ValidationError: If no files were sent, too many were sent, or
                         none could be stored.
    """
    uploads = [upload for upload in uploads if upload and upload.filename]
    if not uploads:
        raise ValidationError("No files uploaded")
    max_files = current_app.config["UPLOAD_MAX_FILES"]
    if len(uploads) > max_files:
        raise ValidationError(f"Too many files (maximum {max_files})")

    stored, errors = [], []
    for upload in uploads:
        try:
            stored.append(save_upload(upload, user_id))
        except ValidationError as exc:
            errors.append({"file": upload.filename, "error": exc.message})

    if not stored:
        raise ValidationError("No files were uploaded successfully", details=errors)
    return stored, errors


# -- Access ----------------------------------------------------------------


def get_file_for_user(file_id: int, user: User) -> FileRecord:
    """
    Return a file record the user may read (owner or admin).

    Raises:
        NotFoundError:    If the file does not exist.
        PermissionDenied: If the user is neither the owner nor an admin.
    """
    record = db.session.get(FileRecord, file_id)
    if record is None:
        raise NotFoundError("File not found")
    if record.uploaded_by != user.id and not user.is_admin:
        logger.warning("User ID %d denied access to file ID %d", user.id, file_id)
        raise PermissionDenied("Access denied")
    return record


def get_download_path(file_id: int, user: User) -> tuple[FileRecord, str]:
    """Return the record and on-disk path, or 404 if the bytes are gone."""
    record = get_file_for_user(file_id, user)
    if not os.path.isfile(record.file_path):
        logger.error("File ID %d missing on disk at %s", record.id, record.file_path)
        raise NotFoundError("File not found on disk")
    return record, record.file_path


def delete_file(file_id: int, user: User) -> None:
    """Delete the stored bytes and the metadata row."""
    record = get_file_for_user(file_id, user)
    path = record.file_path
    snapshot = {"original_name": record.original_name, "file_name": record.file_name}
    db.session.delete(record)
    audit_service.log_change(
        user_id=user.id,
        action_type="DELETE",
        entity_type="file",
        entity_id=file_id,
        previous_value=snapshot,
    )
    db.session.commit()
    _remove_from_disk(path)
    logger.info("Deleted upload ID %d", file_id)


def update_metadata(file_id: int, user_id: int, data: dict) -> FileRecord:
    """
    Update description and tags on one of the user's own files.

    Raises:
        NotFoundError: If the file does not exist or belongs to someone else.
    """
    record = db.session.get(FileRecord, file_id)
    if record is None or record.uploaded_by != user_id:
        raise NotFoundError("File not found")
    if "description" in data:
        record.description = data["description"]
    if "tags" in data:
        record.tags = parse_string_list(data["tags"], "tags")
    db.session.commit()
    logger.info("Updated metadata of upload ID %d", file_id)
    return record


# -- Listing and statistics ------------------------------------------------


def get_user_files(user_id: int, page: int = 1, per_page: int = 20, file_type: str | None = None):
    """Return a page of the user's uploads, newest first."""
    query = FileRecord.query.filter(FileRecord.uploaded_by == user_id)
    if file_type:
        query = query.filter(FileRecord.file_type == file_type)
    return query.order_by(desc(FileRecord.created_at), desc(FileRecord.id)).paginate(
        page=page, per_page=per_page, error_out=False
    )


def get_upload_stats(user: User) -> dict:
    """Aggregate uploads: all files for admins, own files otherwise."""
    criteria = [] if user.is_admin else [FileRecord.uploaded_by == user.id]

    total, total_size, avg_size, max_size, min_size = (
        db.session.query(
            func.count(FileRecord.id),
            func.coalesce(func.sum(FileRecord.file_size), 0),
            func.avg(FileRecord.file_size),
            func.max(FileRecord.file_size),
            func.min(FileRecord.file_size),
        )
        .filter(*criteria)
        .one()
    )
    type_rows = (
        db.session.query(
            FileRecord.file_type,
            func.count(FileRecord.id),
            func.coalesce(func.sum(FileRecord.file_size), 0),
        )
        .filter(*criteria)
        .group_by(FileRecord.file_type)
        .all()
    )
    counts = {file_type: 0 for file_type in FILE_TYPES}
    by_type = []
    for file_type, count, size in type_rows:
        counts[file_type] = count
        by_type.append({"file_type": file_type, "count": count, "total_size": int(size)})

    recent = (
        FileRecord.query.filter(*criteria)
        .order_by(desc(FileRecord.created_at), desc(FileRecord.id))
        .limit(10)
        .all()
    )

    return {
        "overview": {
            "total_files": total,
            "image_count": counts["image"],
            "document_count": counts["document"],
            "spreadsheet_count": counts["spreadsheet"],
            "text_count": counts["text"],
            "total_size": int(total_size),
            "avg_size": float(avg_size) if avg_size is not None else 0.0,
            "max_size": max_size or 0,
            "min_size": min_size or 0,
        },
        "by_type": by_type,
        "recent_uploads": [record.to_dict() for record in recent],
    }
