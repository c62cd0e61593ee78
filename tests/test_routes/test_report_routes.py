"""
Tests for the reports blueprint exports.
"""

import csv
import io

import pytest
from openpyxl import load_workbook


@pytest.fixture
def service(client, user_headers):
    org = client.post(
        "/api/organizations/",
        json={"name": "Fix-It", "industry_type": "REPAIR"},
        headers=user_headers,
    ).get_json()["data"]["organization"]
    client.post(
        "/api/services/",
        json={
            "title": "Replace pipe",
            "industry_type": "REPAIR",
            "customer_name": "Mr. Tuan",
            "amount": 250000,
            "date": "2024-03-01",
            "organization_id": org["id"],
            "priority": "HIGH",
        },
        headers=user_headers,
    )
    return org


class TestServiceExports:
    def test_csv(self, client, user_headers, service):
        response = client.get("/api/reports/export/services/csv", headers=user_headers)
        assert response.status_code == 200
        assert response.headers["Content-Disposition"] == (
            "attachment; filename=service_records.csv"
        )
        rows = list(csv.reader(io.StringIO(response.data.decode("utf-8-sig"))))
        assert len(rows) == 2
        assert "Replace pipe" in rows[1]

    def test_filters_apply(self, client, user_headers, service):
        response = client.get(
            "/api/reports/export/services/csv?priority=LOW", headers=user_headers
        )
        rows = list(csv.reader(io.StringIO(response.data.decode("utf-8-sig"))))
        assert len(rows) == 1

    def test_xlsx(self, client, user_headers, service):
        response = client.get("/api/reports/export/services/xlsx", headers=user_headers)
        assert response.status_code == 200
        assert response.headers["Content-Type"].startswith(
            "application/vnd.openxmlformats-officedocument"
        )
        ws = load_workbook(io.BytesIO(response.data)).active
        assert ws.max_row == 2

    def test_unknown_format(self, client, user_headers):
        response = client.get("/api/reports/export/services/pdf", headers=user_headers)
        assert response.status_code == 400
        assert response.get_json()["message"] == "Export format must be 'csv' or 'xlsx'"


class TestEmployeeExports:
    def test_csv_only_active_by_default(self, client, user_headers, service):
        for name in ("Hai", "Ba"):
            client.post(
                "/api/employees/",
                json={
                    "name": name,
                    "email": f"{name.lower()}@example.com",
                    "role": "Technician",
                    "level": "WORKER",
                    "organization_id": service["id"],
                },
                headers=user_headers,
            )
        response = client.get(
            f"/api/reports/export/employees/csv?organization_id={service['id']}",
            headers=user_headers,
        )
        rows = list(csv.reader(io.StringIO(response.data.decode("utf-8-sig"))))
        assert len(rows) == 3
