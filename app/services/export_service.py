"""
Export service — generate CSV and Excel files for service records and
employees.

All export functions return a BytesIO buffer ready to be sent as
a Flask response with the appropriate content type.  CSV files are
UTF-8 with a BOM so Excel opens Vietnamese text correctly.
"""

import csv
import io
import logging
from decimal import Decimal

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from app.models.organization import Employee
from app.models.service_record import ServiceRecord

logger = logging.getLogger(__name__)

_HEADER_STYLE = {
    "font": Font(bold=True, color="FFFFFF"),
    "fill": PatternFill(fill_type="solid", fgColor="1F6F5C"),
    "alignment": Alignment(horizontal="left", vertical="center"),
}
_MAX_COLUMN_WIDTH = 45
_CURRENCY_FORMAT = "#,##0.00"
_DATE_FORMAT = "yyyy-mm-dd"

SERVICE_HEADERS = [
    "ID",
    "Title",
    "Organization",
    "Industry",
    "Customer",
    "Customer Email",
    "Status",
    "Priority",
    "Amount",
    "Currency",
    "Date",
    "Due Date",
    "Completed",
    "Assigned To",
]

EMPLOYEE_HEADERS = [
    "ID",
    "Name",
    "Email",
    "Phone",
    "Role",
    "Level",
    "Status",
    "Department",
    "Work Site",
    "Organization",
    "Hire Date",
    "Salary",
]

# Column positions (1-based) that hold money or dates in each sheet.
_SERVICE_CURRENCY_COLUMNS = (9,)
_SERVICE_DATE_COLUMNS = (11, 12, 13)
_EMPLOYEE_CURRENCY_COLUMNS = (12,)
_EMPLOYEE_DATE_COLUMNS = (11,)


def _service_row(record: ServiceRecord) -> list:
    return [
        record.id,
        record.title,
        record.organization.name if record.organization else None,
        record.industry_type,
        record.customer_name,
        record.customer_email,
        record.status,
        record.priority,
        record.amount,
        record.currency,
        record.date,
        record.due_date,
        record.completion_date,
        record.assignee.name if record.assignee else None,
    ]


def _employee_row(employee: Employee) -> list:
    return [
        employee.id,
        employee.name,
        employee.email,
        employee.phone,
        employee.role,
        employee.level,
        employee.status,
        employee.department.name if employee.department else None,
        employee.work_site.name if employee.work_site else None,
        employee.organization.name if employee.organization else None,
        employee.hire_date,
        employee.salary,
    ]


# =========================================================================
# CSV Exports
# =========================================================================

def export_services_csv(records: list[ServiceRecord]) -> io.BytesIO:
    """
    Export service records to CSV.

    Args:
        records: ServiceRecord rows, already filtered and ordered.

    Returns:
        BytesIO buffer containing the CSV data.
    """
    return _write_csv(SERVICE_HEADERS, [_service_row(rec) for rec in records])


def export_employees_csv(employees: list[Employee]) -> io.BytesIO:
    """Export employees to CSV."""
    return _write_csv(EMPLOYEE_HEADERS, [_employee_row(emp) for emp in employees])


def _write_csv(headers: list[str], rows: list[list]) -> io.BytesIO:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_csv_value(value) for value in row])

    # Convert to bytes for Flask response.
    buffer = io.BytesIO()
    buffer.write(output.getvalue().encode("utf-8-sig"))
    buffer.seek(0)
    logger.info("Exported %d rows to CSV", len(rows))
    return buffer


# =========================================================================
# Excel Exports
# =========================================================================

def export_services_excel(records: list[ServiceRecord]) -> io.BytesIO:
    """
    Export service records to an Excel workbook.

    Args:
        records: ServiceRecord rows, already filtered and ordered.

    Returns:
        BytesIO buffer containing the .xlsx data.
    """
    return _write_excel(
        "Service Records",
        SERVICE_HEADERS,
        [_service_row(rec) for rec in records],
        _SERVICE_CURRENCY_COLUMNS,
        _SERVICE_DATE_COLUMNS,
    )


def export_employees_excel(employees: list[Employee]) -> io.BytesIO:
    """Export employees to an Excel workbook."""
    return _write_excel(
        "Employees",
        EMPLOYEE_HEADERS,
        [_employee_row(emp) for emp in employees],
        _EMPLOYEE_CURRENCY_COLUMNS,
        _EMPLOYEE_DATE_COLUMNS,
    )


def _write_excel(title, headers, rows, currency_columns, date_columns) -> io.BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = title
    ws.append(headers)
    for cell in ws[1]:
        cell.font = _HEADER_STYLE["font"]
        cell.fill = _HEADER_STYLE["fill"]
        cell.alignment = _HEADER_STYLE["alignment"]

    widths = [len(header) for header in headers]
    for row in rows:
        values = [float(value) if isinstance(value, Decimal) else value for value in row]
        ws.append(values)
        for col_idx, value in enumerate(values, start=1):
            if value is None:
                continue
            widths[col_idx - 1] = max(widths[col_idx - 1], len(str(value)))
            if col_idx in currency_columns:
                ws.cell(row=ws.max_row, column=col_idx).number_format = _CURRENCY_FORMAT
            elif col_idx in date_columns:
                ws.cell(row=ws.max_row, column=col_idx).number_format = _DATE_FORMAT

    for col_idx, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(col_idx)].width = min(width + 3, _MAX_COLUMN_WIDTH)
    ws.freeze_panes = "A2"

    buffer = io.BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    logger.info("Exported %d rows to Excel sheet '%s'", len(rows), title)
    return buffer


# =========================================================================
# Internal helpers
# =========================================================================

def _csv_value(value):
    """Format a cell for CSV output."""
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value
