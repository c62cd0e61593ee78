"""
Routes for the reports blueprint — data exports.

Exports accept the same query filters as the matching list endpoints
and are returned as file attachments.
"""

from flask import make_response
from flask_login import login_required

from app.blueprints.employees.routes import employee_filter_args
from app.blueprints.reports import bp
from app.blueprints.services.routes import service_filter_args
from app.errors import ValidationError
from app.services import employee_service, export_service, service_record_service

_CONTENT_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def _attachment(buffer, basename: str, fmt: str):
    response = make_response(buffer.read())
    response.headers["Content-Type"] = _CONTENT_TYPES[fmt]
    response.headers["Content-Disposition"] = f"attachment; filename={basename}.{fmt}"
    return response


def _check_format(fmt: str) -> None:
    if fmt not in _CONTENT_TYPES:
        raise ValidationError("Export format must be 'csv' or 'xlsx'")


@bp.route("/export/services/<fmt>")
@login_required
def export_services(fmt):
    """
    Export service records as CSV or Excel.

    Args:
        fmt: Export format, 'csv' or 'xlsx'.
    """
    _check_format(fmt)
    records = service_record_service.get_all_service_records(**service_filter_args())
    if fmt == "xlsx":
        buffer = export_service.export_services_excel(records)
    else:
        buffer = export_service.export_services_csv(records)
    return _attachment(buffer, "service_records", fmt)


@bp.route("/export/employees/<fmt>")
@login_required
def export_employees(fmt):
    """Export employees as CSV or Excel, filtered like the employee list."""
    _check_format(fmt)
    employees = employee_service.get_all_employees(**employee_filter_args())
    if fmt == "xlsx":
        buffer = export_service.export_employees_excel(employees)
    else:
        buffer = export_service.export_employees_csv(employees)
    return _attachment(buffer, "employees", fmt)
