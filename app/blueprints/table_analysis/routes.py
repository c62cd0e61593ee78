"""
Routes for the table analysis blueprint.

A table is a JSON array of row objects.  Computation errors (bad shapes,
singular matrices, unknown analysis types) are raised as ``ValueError``
and answered with 400 by the application error handler.
"""

import os

from flask import request
from flask_login import login_required

from app.blueprints.table_analysis import bp
from app.responses import get_json_body, require_fields, success
from app.services import column_service, row_service, table_service


def _table_payload(*fields: str) -> dict:
    payload = get_json_body()
    require_fields(payload, "data", *fields)
    return payload


def _stored_name(filename: str) -> str:
    """Append the ``format`` query argument when the name has no extension."""
    storage_format = request.args.get("format")
    if storage_format and not os.path.splitext(filename)[1]:
        return f"{filename}.{storage_format}"
    return filename


# =========================================================================
# Parsing and conversion
# =========================================================================


@bp.route("/parse", methods=["POST"])
@login_required
def parse():
    """Parse CSV text, JSON rows or an Excel workbook (``format``: auto)."""
    payload = _table_payload()
    result = table_service.parse_table_data(payload["data"], payload.get("format") or "auto")
    return success(result, message="Table parsed successfully")


@bp.route("/validate", methods=["POST"])
@login_required
def validate():
    payload = _table_payload()
    return success(table_service.validate_table(payload["data"]))


@bp.route("/to-matrix", methods=["POST"])
@login_required
def to_matrix():
    payload = _table_payload()
    include_headers = payload.get("include_headers", True)
    table_service.validate_table_structure(payload["data"])
    matrix = table_service.table_to_matrix(payload["data"], bool(include_headers))
    return success(
        {
            "matrix": matrix,
            "dimensions": {"rows": len(matrix), "columns": len(matrix[0]) if matrix else 0},
        }
    )


@bp.route("/from-matrix", methods=["POST"])
@login_required
def from_matrix():
    payload = get_json_body()
    require_fields(payload, "matrix")
    data = table_service.matrix_to_table(payload["matrix"], payload.get("headers"))
    return success({"data": data, "rowCount": len(data)})


# =========================================================================
# Matrix operations
# =========================================================================


def _matrix_payload() -> list:
    payload = get_json_body()
    require_fields(payload, "matrix")
    return payload["matrix"]


@bp.route("/matrix/multiply", methods=["POST"])
@login_required
def matrix_multiply():
    payload = get_json_body()
    require_fields(payload, "matrix_a", "matrix_b")
    result = table_service.matrix_multiply(payload["matrix_a"], payload["matrix_b"])
    return success({"result": result})


@bp.route("/matrix/transpose", methods=["POST"])
@login_required
def matrix_transpose():
    return success({"result": table_service.matrix_transpose(_matrix_payload())})


@bp.route("/matrix/determinant", methods=["POST"])
@login_required
def matrix_determinant():
    return success({"determinant": table_service.matrix_determinant(_matrix_payload())})


@bp.route("/matrix/inverse", methods=["POST"])
@login_required
def matrix_inverse():
    return success({"inverse": table_service.matrix_inverse(_matrix_payload())})


@bp.route("/matrix/statistics", methods=["POST"])
@login_required
def matrix_statistics():
    return success({"statistics": table_service.matrix_statistics(_matrix_payload())})


# =========================================================================
# Analysis
# =========================================================================


@bp.route("/correlation", methods=["POST"])
@login_required
def correlation():
    """Pearson correlation between the numeric columns."""
    payload = _table_payload()
    return success({"correlation": table_service.correlation_matrix(payload["data"])})


@bp.route("/column/analyze", methods=["POST"])
@login_required
def analyze_column():
    payload = _table_payload("column_name")
    result = column_service.analyze_column(
        payload["data"],
        payload["column_name"],
        payload.get("analysis_type") or "comprehensive",
    )
    return success({"analysis": result})


@bp.route("/row/analyze", methods=["POST"])
@login_required
def analyze_row():
    payload = _table_payload("row_index")
    result = row_service.analyze_row(
        payload["data"],
        payload["row_index"],
        payload.get("analysis_type") or "comprehensive",
    )
    return success({"analysis": result})


@bp.route("/analyze", methods=["POST"])
@login_required
def analyze():
    payload = _table_payload()
    result = table_service.analyze_table(
        payload["data"], payload.get("analysis_type") or "comprehensive"
    )
    return success({"analysis": result})


@bp.route("/batch-analyze", methods=["POST"])
@login_required
def batch_analyze():
    """Analyze each of ``datasets``; per-dataset failures are reported."""
    payload = get_json_body()
    result = table_service.batch_analyze(
        payload.get("datasets"), payload.get("analysis_type") or "comprehensive"
    )
    return success(result)


# =========================================================================
# Storage
# =========================================================================


@bp.route("/save", methods=["POST"])
@login_required
def save():
    payload = _table_payload("filename")
    result = table_service.save_table(
        payload["data"], payload["filename"], payload.get("format") or "json"
    )
    return success(result, message="Table saved successfully", status_code=201)


@bp.route("/load/<filename>")
@login_required
def load(filename):
    return success({"table": table_service.load_table(_stored_name(filename))})


@bp.route("/list")
@login_required
def list_tables():
    tables = table_service.list_tables()
    return success({"tables": tables, "count": len(tables)})


@bp.route("/delete/<filename>", methods=["DELETE"])
@login_required
def delete(filename):
    table_service.delete_table(_stored_name(filename))
    return success(message="Table deleted successfully")


@bp.route("/status")
@login_required
def status():
    return success(table_service.get_status())
