"""
Tests for the admin blueprint: user management and audit logs.
"""

import pytest


class TestAccessControl:
    @pytest.mark.parametrize(
        "path", ["/api/admin/users", "/api/admin/audit-logs", "/api/admin/audit-logs/entity-types"]
    )
    def test_plain_user_is_forbidden(self, client, user_headers, path):
        response = client.get(path, headers=user_headers)
        assert response.status_code == 403
        assert response.get_json() == {"status": "fail", "message": "Insufficient permissions"}

    def test_anonymous_is_unauthorized(self, client, db_session):
        assert client.get("/api/admin/users").status_code == 401


class TestUsers:
    def test_list_with_pagination_and_search(self, client, make_user):
        _, headers = make_user("ADMIN")
        make_user(email="findme@example.com")
        make_user()

        body = client.get("/api/admin/users?limit=2", headers=headers).get_json()
        assert body["data"]["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
        assert len(body["data"]["users"]) == 2

        found = client.get("/api/admin/users?search=findme", headers=headers).get_json()
        assert [u["email"] for u in found["data"]["users"]] == ["findme@example.com"]

    def test_update_role(self, client, make_user):
        _, headers = make_user("ADMIN")
        target, _ = make_user()
        response = client.put(
            f"/api/admin/users/{target.id}", json={"role": "MANAGER"}, headers=headers
        )
        assert response.status_code == 200
        assert response.get_json()["data"]["user"]["role"] == "MANAGER"

    def test_update_invalid_role(self, client, make_user):
        _, headers = make_user("ADMIN")
        target, _ = make_user()
        response = client.put(
            f"/api/admin/users/{target.id}", json={"role": "KING"}, headers=headers
        )
        assert response.status_code == 400

    def test_missing_user(self, client, admin_headers):
        response = client.get("/api/admin/users/9999", headers=admin_headers)
        assert response.status_code == 404
        assert response.get_json()["message"] == "User not found"

    def test_deactivate_user(self, client, make_user):
        _, headers = make_user("ADMIN")
        target, target_headers = make_user()
        response = client.delete(f"/api/admin/users/{target.id}", headers=headers)
        assert response.status_code == 200
        assert client.get("/api/auth/me", headers=target_headers).status_code == 401

    def test_cannot_deactivate_self(self, client, make_user):
        admin, headers = make_user("ADMIN")
        response = client.delete(f"/api/admin/users/{admin.id}", headers=headers)
        assert response.status_code == 400


class TestAuditLogs:
    def test_registrations_are_logged(self, client, make_user):
        _, headers = make_user("ADMIN")
        make_user()
        body = client.get(
            "/api/admin/audit-logs?entity_type=user&action_type=CREATE", headers=headers
        ).get_json()
        assert body["data"]["pagination"]["total"] == 2
        assert all(entry["entity_type"] == "user" for entry in body["data"]["audit_logs"])

    def test_entity_types(self, client, admin_headers):
        body = client.get("/api/admin/audit-logs/entity-types", headers=admin_headers).get_json()
        assert "user" in body["data"]["entity_types"]

    def test_bad_date_filter(self, client, admin_headers):
        response = client.get("/api/admin/audit-logs?start_date=yesterday", headers=admin_headers)
        assert response.status_code == 400
