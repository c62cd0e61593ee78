"""
Routes for the upload blueprint.

Files arrive as multipart form data: ``file`` for a single upload,
``files`` (up to ``UPLOAD_MAX_FILES``) for a batch.
"""

from flask import request, send_file
from flask_login import current_user, login_required

from app.blueprints.upload import bp
from app.errors import ValidationError
from app.responses import get_json_body, page_args, paginated, success
from app.services import upload_service


@bp.route("/", methods=["POST"])
@bp.route("/single", methods=["POST"])
@login_required
def upload_single():
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise ValidationError("No file uploaded")
    record = upload_service.save_upload(
        upload, current_user.id, description=request.form.get("description")
    )
    return success(
        {"file": record.to_dict()},
        message="File uploaded successfully",
        status_code=201,
    )


@bp.route("/multiple", methods=["POST"])
@login_required
def upload_multiple():
    """Store several files; per-file failures are listed in ``errors``."""
    stored, errors = upload_service.save_uploads(
        request.files.getlist("files"), current_user.id
    )
    return success(
        {
            "files": [record.to_dict() for record in stored],
            "errors": errors,
            "uploaded": len(stored),
            "failed": len(errors),
        },
        message=f"{len(stored)} file(s) uploaded successfully",
        status_code=201,
    )


@bp.route("/<int:file_id>")
@login_required
def get_file(file_id):
    record = upload_service.get_file_for_user(file_id, current_user)
    return success({"file": record.to_dict()})


@bp.route("/<int:file_id>/download")
@login_required
def download_file(file_id):
    record, path = upload_service.get_download_path(file_id, current_user)
    return send_file(
        path,
        mimetype=record.mime_type,
        as_attachment=True,
        download_name=record.original_name,
    )


@bp.route("/<int:file_id>", methods=["DELETE"])
@login_required
def delete_file(file_id):
    upload_service.delete_file(file_id, current_user)
    return success(message="File deleted successfully")


@bp.route("/<int:file_id>/metadata", methods=["PATCH"])
@login_required
def update_metadata(file_id):
    """Owner-only update of ``description`` and ``tags``."""
    record = upload_service.update_metadata(file_id, current_user.id, get_json_body())
    return success({"file": record.to_dict()}, message="File metadata updated successfully")


@bp.route("/user/files")
@login_required
def user_files():
    page, limit = page_args(default_limit=20)
    pagination = upload_service.get_user_files(
        current_user.id,
        page=page,
        per_page=limit,
        file_type=request.args.get("file_type") or None,
    )
    return paginated(
        "files", [record.to_dict() for record in pagination.items], page, limit, pagination.total
    )


@bp.route("/stats/overview")
@login_required
def upload_stats():
    return success(upload_service.get_upload_stats(current_user))
