"""
Tests for the upload blueprint.
"""

import io

import pytest


def _file(content=b"quarterly numbers", name="report.txt", mimetype="text/plain"):
    return (io.BytesIO(content), name, mimetype)


class TestUpload:
    @pytest.mark.parametrize("path", ["/api/upload/", "/api/upload/single"])
    def test_single_upload(self, client, user_headers, path):
        response = client.post(
            path,
            data={"file": _file(), "description": "Q3"},
            headers=user_headers,
            content_type="multipart/form-data",
        )
        assert response.status_code == 201
        record = response.get_json()["data"]["file"]
        assert record["original_name"] == "report.txt"
        assert record["file_size"] == 17
        assert record["description"] == "Q3"

    def test_missing_file(self, client, user_headers):
        response = client.post(
            "/api/upload/single", data={}, headers=user_headers, content_type="multipart/form-data"
        )
        assert response.status_code == 400
        assert response.get_json()["message"] == "No file uploaded"

    def test_disallowed_type(self, client, user_headers):
        response = client.post(
            "/api/upload/single",
            data={"file": _file(name="tool.exe", mimetype="application/x-msdownload")},
            headers=user_headers,
            content_type="multipart/form-data",
        )
        assert response.status_code == 400

    def test_multiple_with_partial_failure(self, client, user_headers):
        response = client.post(
            "/api/upload/multiple",
            data={"files": [_file(), _file(content=b"", name="empty.txt")]},
            headers=user_headers,
            content_type="multipart/form-data",
        )
        assert response.status_code == 201
        data = response.get_json()["data"]
        assert data["uploaded"] == 1
        assert data["failed"] == 1
        assert data["errors"][0] == {"file": "empty.txt", "error": "File is empty"}


class TestFileAccess:
    def _upload(self, client, headers):
        response = client.post(
            "/api/upload/single",
            data={"file": _file()},
            headers=headers,
            content_type="multipart/form-data",
        )
        return response.get_json()["data"]["file"]["id"]

    def test_download(self, client, user_headers):
        file_id = self._upload(client, user_headers)
        response = client.get(f"/api/upload/{file_id}/download", headers=user_headers)
        assert response.status_code == 200
        assert response.data == b"quarterly numbers"
        assert "report.txt" in response.headers["Content-Disposition"]

    def test_other_user_is_denied(self, client, make_user):
        _, owner_headers = make_user()
        _, other_headers = make_user()
        file_id = self._upload(client, owner_headers)
        response = client.get(f"/api/upload/{file_id}", headers=other_headers)
        assert response.status_code == 403

    def test_metadata_and_delete(self, client, user_headers):
        file_id = self._upload(client, user_headers)
        response = client.patch(
            f"/api/upload/{file_id}/metadata",
            json={"description": "final", "tags": ["finance"]},
            headers=user_headers,
        )
        assert response.get_json()["data"]["file"]["tags"] == ["finance"]

        assert client.delete(f"/api/upload/{file_id}", headers=user_headers).status_code == 200
        assert client.get(f"/api/upload/{file_id}", headers=user_headers).status_code == 404

    def test_listing_and_stats(self, client, user_headers):
        for _ in range(3):
            self._upload(client, user_headers)
        body = client.get("/api/upload/user/files?limit=2", headers=user_headers).get_json()
        assert body["data"]["pagination"]["total"] == 3
        assert len(body["data"]["files"]) == 2

        stats = client.get("/api/upload/stats/overview", headers=user_headers).get_json()["data"]
        assert stats["overview"]["total_files"] == 3
        assert stats["overview"]["total_size"] == 51
