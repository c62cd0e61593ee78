"""
Tests for upload_service: storing files, access checks and statistics.
"""

import io
import os

import pytest
from werkzeug.datastructures import FileStorage

from app.errors import NotFoundError, PermissionDenied, ValidationError
from app.models.file import FileRecord
from app.services import upload_service


def _file(content=b"hello world", name="notes.txt", mimetype="text/plain"):
    return FileStorage(stream=io.BytesIO(content), filename=name, content_type=mimetype)


class TestFileType:
    @pytest.mark.parametrize(
        "mime, expected",
        [
            ("image/png", "image"),
            ("application/pdf", "document"),
            ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", "document"),
            ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "spreadsheet"),
            ("application/vnd.ms-excel", "spreadsheet"),
            ("text/csv", "text"),
            ("application/zip", "other"),
        ],
    )
    def test_categories(self, mime, expected):
        assert upload_service.get_file_type(mime) == expected


class TestSave:
    def test_save_writes_file_and_row(self, make_user):
        user, _ = make_user()
        record = upload_service.save_upload(_file(), user.id, "Meeting notes")

        assert record.original_name == "notes.txt"
        assert record.file_name.startswith("notes-")
        assert record.file_name.endswith(".txt")
        assert record.file_size == 11
        assert record.file_type == "text"
        assert record.description == "Meeting notes"
        with open(record.file_path, "rb") as fh:
            assert fh.read() == b"hello world"

    def test_unsafe_name_is_sanitised(self, make_user):
        user, _ = make_user()
        record = upload_service.save_upload(_file(name="../../etc/passwd.txt"), user.id)
        assert "/" not in record.file_name
        assert os.path.dirname(record.file_path) == os.path.dirname(
            upload_service.save_upload(_file(), user.id).file_path
        )

    def test_disallowed_type(self, make_user):
        user, _ = make_user()
        with pytest.raises(ValidationError, match="is not allowed"):
            upload_service.save_upload(_file(mimetype="application/zip"), user.id)

    def test_empty_file(self, make_user):
        user, _ = make_user()
        with pytest.raises(ValidationError, match="File is empty"):
            upload_service.save_upload(_file(content=b""), user.id)

    def test_too_large(self, make_user, app, monkeypatch):
        user, _ = make_user()
        monkeypatch.setitem(app.config, "UPLOAD_MAX_FILE_SIZE", 5)
        with pytest.raises(ValidationError, match="File too large"):
            upload_service.save_upload(_file(), user.id)

    def test_multiple_reports_failures(self, make_user):
        user, _ = make_user()
        stored, errors = upload_service.save_uploads(
            [_file(), _file(name="bad.zip", mimetype="application/zip")], user.id
        )
        assert len(stored) == 1
        assert errors[0]["file"] == "bad.zip"

    def test_multiple_all_failing(self, make_user):
        user, _ = make_user()
        with pytest.raises(ValidationError, match="No files were uploaded successfully"):
            upload_service.save_uploads([_file(content=b"")], user.id)

    def test_too_many_files(self, make_user, app, monkeypatch):
        user, _ = make_user()
        monkeypatch.setitem(app.config, "UPLOAD_MAX_FILES", 1)
        with pytest.raises(ValidationError, match="Too many files"):
            upload_service.save_uploads([_file(), _file()], user.id)


class TestAccess:
    def test_owner_and_admin_can_read(self, make_user):
        owner, _ = make_user()
        admin, _ = make_user("ADMIN")
        record = upload_service.save_upload(_file(), owner.id)

        assert upload_service.get_file_for_user(record.id, owner).id == record.id
        assert upload_service.get_file_for_user(record.id, admin).id == record.id

    def test_other_user_is_denied(self, make_user):
        owner, _ = make_user()
        stranger, _ = make_user()
        record = upload_service.save_upload(_file(), owner.id)
        with pytest.raises(PermissionDenied, match="Access denied"):
            upload_service.get_file_for_user(record.id, stranger)

    def test_missing_file(self, make_user):
        user, _ = make_user()
        with pytest.raises(NotFoundError):
            upload_service.get_file_for_user(404, user)

    def test_delete_removes_bytes(self, make_user):
        user, _ = make_user()
        record = upload_service.save_upload(_file(), user.id)
        path = record.file_path
        upload_service.delete_file(record.id, user)

        assert not os.path.exists(path)
        assert FileRecord.query.count() == 0

    def test_update_metadata_only_for_owner(self, make_user):
        owner, _ = make_user()
        other, _ = make_user()
        record = upload_service.save_upload(_file(), owner.id)

        updated = upload_service.update_metadata(
            record.id, owner.id, {"description": "v2", "tags": "a,b"}
        )
        assert updated.description == "v2"
        assert updated.tags == ["a", "b"]
        with pytest.raises(NotFoundError):
            upload_service.update_metadata(record.id, other.id, {"description": "x"})


class TestListingAndStats:
    def test_user_files_pagination(self, make_user):
        user, _ = make_user()
        for _ in range(3):
            upload_service.save_upload(_file(), user.id)
        page = upload_service.get_user_files(user.id, page=1, per_page=2)
        assert page.total == 3
        assert len(page.items) == 2

    def test_stats_scope(self, make_user):
        owner, _ = make_user()
        admin, _ = make_user("ADMIN")
        upload_service.save_upload(_file(), owner.id)
        upload_service.save_upload(_file(content=b"abc", name="a.csv", mimetype="text/csv"), admin.id)

        own = upload_service.get_upload_stats(owner)["overview"]
        assert own["total_files"] == 1
        assert own["text_count"] == 1

        everything = upload_service.get_upload_stats(admin)["overview"]
        assert everything["total_files"] == 2
        assert everything["total_size"] == 14
        assert everything["max_size"] == 11
        assert everything["min_size"] == 3
