"""Tests for export_service CSV and Excel output."""

import csv
import io
from datetime import date
from decimal import Decimal

import pytest
from openpyxl import load_workbook

from app.models.organization import Employee, Organization
from app.models.service_record import ServiceRecord
from app.services import export_service


@pytest.fixture
def records(db_session):
    org = Organization(name="Sạch Sẽ", industry_type="CLEANING")
    db_session.add(org)
    db_session.flush()
    employee = Employee(
        name="Lê Văn A", email="a@example.com", role="Cleaner", level="WORKER",
        organization_id=org.id, hire_date=date(2023, 2, 1), salary=Decimal("9000000"),
    )
    db_session.add(employee)
    db_session.flush()
    record = ServiceRecord(
        title="Deep clean", industry_type="CLEANING", customer_name="Khách",
        amount=Decimal("1500000.50"), date=date(2024, 6, 3), organization_id=org.id,
        assigned_to=employee.id,
    )
    db_session.add(record)
    db_session.commit()
    return [record], [employee]


class TestCsv:
    def test_services_csv(self, records):
        buffer = export_service.export_services_csv(records[0])
        raw = buffer.getvalue()
        assert raw.startswith(b"\xef\xbb\xbf")

        rows = list(csv.reader(io.StringIO(raw.decode("utf-8-sig"))))
        assert rows[0] == export_service.SERVICE_HEADERS
        data = dict(zip(rows[0], rows[1]))
        assert data["Organization"] == "Sạch Sẽ"
        assert data["Amount"] == "1500000.50"
        assert data["Date"] == "2024-06-03"
        assert data["Due Date"] == ""
        assert data["Assigned To"] == "Lê Văn A"

    def test_employees_csv(self, records):
        buffer = export_service.export_employees_csv(records[1])
        rows = list(csv.reader(io.StringIO(buffer.getvalue().decode("utf-8-sig"))))
        assert rows[0] == export_service.EMPLOYEE_HEADERS
        assert rows[1][1] == "Lê Văn A"
        assert rows[1][-1] == "9000000.00"

    def test_empty_export_has_header_only(self, db_session):
        buffer = export_service.export_services_csv([])
        rows = list(csv.reader(io.StringIO(buffer.getvalue().decode("utf-8-sig"))))
        assert len(rows) == 1


class TestExcel:
    def test_services_workbook(self, records):
        wb = load_workbook(export_service.export_services_excel(records[0]))
        ws = wb.active
        assert ws.title == "Service Records"
        assert [cell.value for cell in ws[1]] == export_service.SERVICE_HEADERS
        assert ws.cell(row=2, column=2).value == "Deep clean"
        assert ws.cell(row=2, column=9).value == pytest.approx(1500000.5)
        assert ws.cell(row=2, column=9).number_format == "#,##0.00"
        assert ws.freeze_panes == "A2"
        assert ws.cell(row=1, column=1).font.bold is True

    def test_employees_workbook(self, records):
        wb = load_workbook(export_service.export_employees_excel(records[1]))
        ws = wb.active
        assert ws.title == "Employees"
        assert ws.cell(row=2, column=10).value == "Sạch Sẽ"
        assert ws.max_row == 2
