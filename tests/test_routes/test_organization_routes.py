"""
Tests for the organizations, departments, employees and services
blueprints.
"""

import pytest


@pytest.fixture
def org_id(client, user_headers):
    response = client.post(
        "/api/organizations/",
        json={"name": "Sunrise Spa", "industry_type": "BEAUTY"},
        headers=user_headers,
    )
    assert response.status_code == 201
    return response.get_json()["data"]["organization"]["id"]


class TestOrganizations:
    def test_requires_login(self, client, db_session):
        assert client.get("/api/organizations/").status_code == 401

    def test_create_and_list(self, client, user_headers, org_id):
        body = client.get("/api/organizations/", headers=user_headers).get_json()
        assert body["data"]["pagination"]["total"] == 1
        assert body["data"]["organizations"][0]["id"] == org_id

    def test_invalid_industry(self, client, user_headers):
        response = client.post(
            "/api/organizations/",
            json={"name": "Garage", "industry_type": "MECHANIC"},
            headers=user_headers,
        )
        assert response.status_code == 400

    def test_detail_and_update(self, client, user_headers, org_id):
        response = client.put(
            f"/api/organizations/{org_id}", json={"phone": "0909"}, headers=user_headers
        )
        assert response.get_json()["data"]["organization"]["phone"] == "0909"

        detail = client.get(f"/api/organizations/{org_id}", headers=user_headers).get_json()
        assert detail["data"]["organization"]["name"] == "Sunrise Spa"
        assert detail["data"]["statistics"]["total_services"] == 0

    def test_delete(self, client, user_headers, org_id):
        assert client.delete(f"/api/organizations/{org_id}", headers=user_headers).status_code == 200
        assert client.get(f"/api/organizations/{org_id}", headers=user_headers).status_code == 404

    def test_members(self, client, make_user, user_headers, org_id):
        newcomer, _ = make_user()
        response = client.post(
            f"/api/organizations/{org_id}/members",
            json={"user_id": newcomer.id, "role": "MANAGER"},
            headers=user_headers,
        )
        assert response.status_code == 201

        members = client.get(
            f"/api/organizations/{org_id}/members", headers=user_headers
        ).get_json()["data"]["members"]
        assert len(members) == 2

        response = client.delete(
            f"/api/organizations/{org_id}/members/{newcomer.id}", headers=user_headers
        )
        assert response.status_code == 200

    def test_work_sites(self, client, user_headers, org_id):
        response = client.post(
            f"/api/organizations/{org_id}/work-sites",
            json={"name": "Branch 2", "type": "SITE"},
            headers=user_headers,
        )
        assert response.status_code == 201
        site_id = response.get_json()["data"]["work_site"]["id"]

        client.delete(f"/api/organizations/{org_id}/work-sites/{site_id}", headers=user_headers)
        listed = client.get(
            f"/api/organizations/{org_id}/work-sites", headers=user_headers
        ).get_json()["data"]["work_sites"]
        assert listed == []


class TestDepartmentsAndEmployees:
    def test_department_flow(self, client, user_headers, org_id):
        response = client.post(
            "/api/departments/",
            json={"name": "Massage", "type": "OFFICE", "organization_id": org_id},
            headers=user_headers,
        )
        assert response.status_code == 201
        dept_id = response.get_json()["data"]["department"]["id"]

        tree = client.get(
            f"/api/departments/hierarchy?organization_id={org_id}", headers=user_headers
        ).get_json()["data"]
        assert tree["total_departments"] == 1

        response = client.post(
            "/api/employees/",
            json={
                "name": "Thu",
                "email": "thu@example.com",
                "role": "Therapist",
                "level": "SPECIALIST",
                "organization_id": org_id,
                "department_id": dept_id,
            },
            headers=user_headers,
        )
        assert response.status_code == 201
        employee_id = response.get_json()["data"]["employee"]["id"]

        response = client.delete(f"/api/departments/{dept_id}", headers=user_headers)
        assert response.status_code == 400
        assert response.get_json()["message"] == "Cannot deactivate department with active employees"

        assert client.delete(f"/api/employees/{employee_id}", headers=user_headers).status_code == 200
        assert client.delete(f"/api/departments/{dept_id}", headers=user_headers).status_code == 200

    def test_hierarchy_needs_organization(self, client, user_headers):
        response = client.get("/api/departments/hierarchy", headers=user_headers)
        assert response.status_code == 400

    def test_employee_listing_and_stats(self, client, user_headers, org_id):
        for n in range(3):
            client.post(
                "/api/employees/",
                json={
                    "name": f"Staff {n}",
                    "email": f"staff{n}@example.com",
                    "role": "Staff",
                    "level": "WORKER",
                    "organization_id": org_id,
                    "salary": 100 * (n + 1),
                },
                headers=user_headers,
            )
        body = client.get(
            f"/api/employees/?organization_id={org_id}&limit=2", headers=user_headers
        ).get_json()
        assert body["data"]["pagination"]["total"] == 3
        assert len(body["data"]["employees"]) == 2

        stats = client.get(
            f"/api/employees/stats/overview?organization_id={org_id}", headers=user_headers
        ).get_json()["data"]
        assert stats["overview"]["active_employees"] == 3
        assert stats["overview"]["avg_salary"] == pytest.approx(200.0)

    def test_missing_employee_fields(self, client, user_headers, org_id):
        response = client.post(
            "/api/employees/", json={"name": "Nobody"}, headers=user_headers
        )
        assert response.status_code == 400
        assert response.get_json()["message"] == (
            "Name, email, role, level, and organization ID are required"
        )


class TestServiceRecords:
    def _create(self, client, headers, org_id, **overrides):
        payload = {
            "title": "Hot stone massage",
            "industry_type": "BEAUTY",
            "customer_name": "Mrs. Lan",
            "amount": 450000,
            "date": "2024-05-10",
            "organization_id": org_id,
        }
        payload.update(overrides)
        return client.post("/api/services/", json=payload, headers=headers)

    def test_create_and_detail(self, client, user_headers, org_id):
        response = self._create(client, user_headers, org_id)
        assert response.status_code == 201
        service = response.get_json()["data"]["service"]
        assert service["organization_name"] == "Sunrise Spa"
        assert service["status"] == "PENDING"

        client.put(
            f"/api/services/{service['id']}", json={"status": "COMPLETED"}, headers=user_headers
        )
        detail = client.get(f"/api/services/{service['id']}", headers=user_headers).get_json()
        history = detail["data"]["service"]["history"]
        assert [entry["field_name"] for entry in history] == ["status"]

    def test_filters_and_stats(self, client, user_headers, org_id):
        self._create(client, user_headers, org_id, priority="URGENT")
        self._create(client, user_headers, org_id, date="2023-01-01")

        body = client.get(
            "/api/services/?priority=URGENT", headers=user_headers
        ).get_json()
        assert body["data"]["pagination"]["total"] == 1

        body = client.get("/api/services/?date_from=2024-01-01", headers=user_headers).get_json()
        assert body["data"]["pagination"]["total"] == 1

        stats = client.get(
            f"/api/services/stats/overview?organization_id={org_id}", headers=user_headers
        ).get_json()["data"]
        assert stats["overview"]["total_services"] == 2
        assert stats["overview"]["urgent_services"] == 1

    def test_bad_date_filter(self, client, user_headers):
        response = client.get("/api/services/?date_from=soon", headers=user_headers)
        assert response.status_code == 400

    def test_delete(self, client, user_headers, org_id):
        service_id = self._create(client, user_headers, org_id).get_json()["data"]["service"]["id"]
        assert client.delete(f"/api/services/{service_id}", headers=user_headers).status_code == 200
        assert client.get(f"/api/services/{service_id}", headers=user_headers).status_code == 404
