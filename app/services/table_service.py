"""
Table data service — parse, describe, analyze and store tabular data.

A *table* is a list of row dicts sharing the keys of the first row.
Parsing turns CSV text, JSON arrays or Excel workbooks into a table with
typed cells (numbers, datetimes, booleans, strings, ``None`` for blanks).

The analysis and matrix functions are pure and raise ``ValueError`` on
bad input.  Only the storage functions touch the filesystem; they write
under ``TABLE_DATA_FOLDER`` and raise ``NotFoundError`` for unknown
files.  This module must not import ``app.extensions``: the analysis
orchestrator (an extension) imports it.
"""

import base64
import binascii
import csv
import io
import json
import logging
import os
import re
from datetime import date, datetime, timezone

import numpy as np
from flask import current_app
from openpyxl import load_workbook
from werkzeug.utils import secure_filename

from app.errors import NotFoundError
from app.services import statistics as st

logger = logging.getLogger(__name__)

ANALYSIS_TYPES = ("comprehensive", "statistical", "patterns", "anomalies")
PARSE_FORMATS = ("auto", "csv", "json", "excel")
STORAGE_FORMATS = ("json", "csv")

NUMBER_PATTERN = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")
ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
ISO_DATETIME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}")

_OUTLIER_Z = 2
_TREND_MIN_R = 0.5


# =====================================================================
# Parsing
# =====================================================================


def parse_temporal(text: str):
    """
    Parse an ISO date or timestamp string.

    ``YYYY-MM-DD`` gives a ``date``; timestamps give naive-UTC datetimes.
    Returns ``None`` for anything else.
    """
    try:
        if ISO_DATE_PATTERN.match(text):
            return date.fromisoformat(text)
        if not ISO_DATETIME_PATTERN.match(text):
            return None
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _temporal_cell(value):
    if isinstance(value, str):
        parsed = parse_temporal(value.strip())
        if parsed is not None:
            return parsed
    return value


def coerce_temporal(data):
    """Copy of a table with ISO date strings turned into date objects."""
    if not isinstance(data, list):
        return data
    return [
        {key: _temporal_cell(value) for key, value in row.items()}
        if isinstance(row, dict)
        else row
        for row in data
    ]


def parse_value(value):
    """
    Convert a raw cell string to a typed value.

    ``''`` becomes ``None``, numeric strings become int/float, ISO dates
    and timestamps become dates and naive-UTC datetimes and
    ``true``/``false`` become bools.  Non-string values pass through
    unchanged.
    """
    if not isinstance(value, str):
        return value
    text = value.strip()
    if text == "":
        return None
    if NUMBER_PATTERN.match(text):
        return int(text) if INTEGER_PATTERN.match(text) else float(text)
    temporal = parse_temporal(text)
    if temporal is not None:
        return temporal
    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    return text


def parse_csv(text: str) -> list[dict]:
    """
    Parse CSV text into rows keyed by the header line.

    Blank lines are skipped, cells are trimmed and rows whose cell count
    differs from the header are dropped.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        raise ValueError("CSV data is empty")

    reader = csv.reader(lines)
    headers = [cell.strip() for cell in next(reader)]
    rows = []
    for cells in reader:
        if len(cells) != len(headers):
            continue
        rows.append({h: parse_value(cell.strip()) for h, cell in zip(headers, cells)})
    return rows


def parse_json(data) -> list[dict]:
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON data: {exc.msg}") from exc
    if not isinstance(data, list):
        raise ValueError("JSON data must be an array of objects")
    return coerce_temporal(data)


def parse_excel(data) -> list[dict]:
    """
    Read the first worksheet of an xlsx workbook.

    ``data`` may be raw bytes, a base64 string or an already parsed list
    of rows (returned as is).  The first worksheet row holds the headers.
    """
    if isinstance(data, list):
        return data
    if isinstance(data, str):
        try:
            data = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("Excel data must be base64 encoded") from exc
    if not isinstance(data, (bytes, bytearray)):
        raise ValueError("Excel data must be bytes or a base64 string")

    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as exc:  # openpyxl raises several unrelated types
        raise ValueError(f"Could not read Excel workbook: {exc}") from exc

    try:
        sheet = workbook.worksheets[0]
        row_iter = sheet.iter_rows(values_only=True)
        header_row = next(row_iter, None)
        if header_row is None:
            return []
        headers = [
            str(cell).strip() if cell is not None else f"column_{i}"
            for i, cell in enumerate(header_row)
        ]
        rows = []
        for values in row_iter:
            if values is None or all(v is None for v in values):
                continue
            rows.append(
                {
                    h: parse_value(values[i]) if i < len(values) else None
                    for i, h in enumerate(headers)
                }
            )
        return rows
    finally:
        workbook.close()


def parse_table_data(data, data_format: str = "auto") -> dict:
    """
    Parse raw input into a validated table.

    Args:
        data:        CSV text, a JSON string or list, or Excel bytes/base64.
        data_format: One of ``PARSE_FORMATS``.

    Returns:
        Dict with ``data`` (rows), ``metadata`` and the resolved ``format``.

    Raises:
        ValueError: On an unknown format or unparseable input.
    """
    if data_format == "auto":
        data_format = _detect_format(data)

    if data_format == "csv":
        if not isinstance(data, str):
            raise ValueError("CSV data must be a string")
        rows = parse_csv(data)
    elif data_format == "json":
        rows = parse_json(data)
    elif data_format == "excel":
        rows = parse_excel(data)
    else:
        raise ValueError(f"Unsupported format: {data_format}")

    validate_table_structure(rows)
    logger.debug("Parsed %d rows from %s input", len(rows), data_format)
    return {"data": rows, "metadata": extract_table_metadata(rows), "format": data_format}


def _detect_format(data) -> str:
    if isinstance(data, list):
        return "json"
    if isinstance(data, str):
        text = data.strip()
        if text.startswith("["):
            return "json"
        if "," in text and "\n" in text:
            return "csv"
    raise ValueError("Unable to detect data format")


def validate_table_structure(data) -> None:
    """Raise ``ValueError`` unless ``data`` is a non-empty list of dicts."""
    if not isinstance(data, list) or not data:
        raise ValueError("Data must be a non-empty array")
    for index, row in enumerate(data):
        if not isinstance(row, dict):
            raise ValueError(f"Row {index} is not an object")


def validate_table(data) -> dict:
    """
    Report structural problems without raising.

    Returns:
        ``{"valid", "errors", "warnings", "metadata"}`` where metadata is
        present only for a valid table.
    """
    if not isinstance(data, list) or not data:
        return {
            "valid": False,
            "errors": ["Data must be a non-empty array"],
            "warnings": [],
            "metadata": None,
        }

    errors, warnings = [], []
    expected = len(data[0]) if isinstance(data[0], dict) else None
    for index, row in enumerate(data):
        if not isinstance(row, dict):
            errors.append(f"Row {index} is not an object")
        elif expected is not None and len(row) != expected:
            warnings.append(
                f"Row {index} has {len(row)} columns, expected {expected}"
            )
    if errors:
        return {"valid": False, "errors": errors, "warnings": warnings, "metadata": None}
    return {
        "valid": True,
        "errors": [],
        "warnings": warnings,
        "metadata": extract_table_metadata(data),
    }


# =====================================================================
# Metadata
# =====================================================================


def _is_null(value) -> bool:
    return value is None or value == ""


def _unique_key(value):
    try:
        hash(value)
    except TypeError:
        return json.dumps(value, sort_keys=True, default=str)
    return (type(value).__name__, value)


def column_values(data: list[dict], column: str) -> list:
    return [row.get(column) for row in data]


def numeric_values(values) -> list:
    return [v for v in values if st.is_number(v)]


def detect_column_type(values) -> str:
    """Single type shared by all non-null values, else ``string``."""
    types = {st.value_type(v) for v in values if not _is_null(v)}
    if len(types) == 1:
        return types.pop()
    return "string"


def basic_statistics(values) -> dict:
    """min/max/mean/median and population stdDev of numeric values."""
    return {
        "min": float(min(values)),
        "max": float(max(values)),
        "mean": st.mean(values),
        "median": st.median(values),
        "stdDev": st.std_dev(values),
    }


def extract_table_metadata(data: list[dict]) -> dict:
    """Describe row/column counts, column types and numeric statistics."""
    validate_table_structure(data)
    data = coerce_temporal(data)
    headers = list(data[0].keys())

    columns, data_types, statistics = [], {}, {}
    for column in headers:
        values = column_values(data, column)
        col_type = detect_column_type(values)
        columns.append(
            {
                "name": column,
                "type": col_type,
                "nullCount": sum(1 for v in values if _is_null(v)),
                "uniqueCount": len({_unique_key(v) for v in values}),
                "sampleValues": values[:5],
            }
        )
        data_types[column] = col_type
        numbers = numeric_values(values)
        if col_type == "number" and numbers:
            statistics[column] = basic_statistics(numbers)

    return {
        "rowCount": len(data),
        "columnCount": len(headers),
        "columns": columns,
        "dataTypes": data_types,
        "statistics": statistics,
    }


# =====================================================================
# Matrices
# =====================================================================


def table_to_matrix(data: list[dict], include_headers: bool = False) -> list[list]:
    """Convert rows to a list of lists; ``None`` cells become 0."""
    validate_table_structure(data)
    headers = list(data[0].keys())
    matrix = [[0 if row.get(h) is None else row.get(h) for h in headers] for row in data]
    if include_headers:
        matrix.insert(0, headers)
    return matrix


def matrix_to_table(matrix: list[list], headers: list[str] | None = None) -> list[dict]:
    """
    Convert a list of lists to rows.

    Without explicit ``headers`` the first row is used as the header row
    when its first cell is a string; otherwise columns are named
    ``column_0``, ``column_1`` and so on.
    """
    if not isinstance(matrix, list) or not matrix or not isinstance(matrix[0], list):
        raise ValueError("Matrix must be a non-empty 2D array")

    body = matrix
    if not headers:
        if matrix[0] and isinstance(matrix[0][0], str):
            headers = [str(h) for h in matrix[0]]
            body = matrix[1:]
        else:
            headers = [f"column_{i}" for i in range(len(matrix[0]))]
    return [
        {h: row[i] if i < len(row) else None for i, h in enumerate(headers)} for row in body
    ]


def _as_array(matrix, name: str = "Matrix") -> np.ndarray:
    if not isinstance(matrix, list) or not matrix or not all(
        isinstance(row, list) and row for row in matrix
    ):
        raise ValueError(f"{name} must be a non-empty 2D array")
    if len({len(row) for row in matrix}) != 1:
        raise ValueError(f"{name} rows must all have the same length")
    if not all(st.is_number(v) for row in matrix for v in row):
        raise ValueError(f"{name} must contain only numeric values")
    return np.asarray(matrix, dtype=float)


def matrix_multiply(a: list[list], b: list[list]) -> list[list]:
    left, right = _as_array(a, "Matrix A"), _as_array(b, "Matrix B")
    if left.shape[1] != right.shape[0]:
        raise ValueError("Cannot multiply matrices: incompatible dimensions")
    return (left @ right).tolist()


def matrix_transpose(matrix: list[list]) -> list[list]:
    return _as_array(matrix).T.tolist()


def matrix_determinant(matrix: list[list]) -> float:
    """Determinant via LU factorization (Gaussian elimination with
    partial pivoting)."""
    arr = _as_array(matrix)
    if arr.shape[0] != arr.shape[1]:
        raise ValueError("Matrix must be square")
    return float(np.linalg.det(arr))


def matrix_inverse(matrix: list[list]) -> list[list]:
    arr = _as_array(matrix)
    if arr.shape[0] != arr.shape[1]:
        raise ValueError("Matrix must be square")
    if np.linalg.matrix_rank(arr) < arr.shape[0]:
        raise ValueError("Matrix is singular and cannot be inverted")
    try:
        return np.linalg.inv(arr).tolist()
    except np.linalg.LinAlgError as exc:
        raise ValueError("Matrix is singular and cannot be inverted") from exc


def matrix_mean(matrix: list[list]) -> float:
    return float(_as_array(matrix).mean())


def matrix_std(matrix: list[list]) -> float:
    """Population standard deviation over all cells."""
    return float(_as_array(matrix).std())


def matrix_statistics(matrix: list[list]) -> dict:
    arr = _as_array(matrix)
    return {
        "rows": int(arr.shape[0]),
        "columns": int(arr.shape[1]),
        "mean": float(arr.mean()),
        "std": float(arr.std()),
        "min": float(arr.min()),
        "max": float(arr.max()),
        "sum": float(arr.sum()),
    }


def correlation_matrix(data: list[dict]) -> dict:
    """
    Pearson correlation between every pair of numeric columns.

    Only rows where both columns hold numbers take part in a pair.  A
    column with no variance correlates 0 with everything.
    """
    metadata = extract_table_metadata(data)
    columns = [name for name, t in metadata["dataTypes"].items() if t == "number"]

    matrix = []
    for first in columns:
        line = []
        for second in columns:
            pairs = [
                (row.get(first), row.get(second))
                for row in data
                if st.is_number(row.get(first)) and st.is_number(row.get(second))
            ]
            line.append(_pearson(pairs))
        matrix.append(line)
    return {"columns": columns, "matrix": matrix}


def _pearson(pairs) -> float:
    if not pairs:
        return 0.0
    arr = np.asarray(pairs, dtype=float)
    x, y = arr[:, 0] - arr[:, 0].mean(), arr[:, 1] - arr[:, 1].mean()
    denominator = np.sqrt(np.sum(x**2) * np.sum(y**2))
    if denominator == 0:
        return 0.0
    return float(np.sum(x * y) / denominator)


# =====================================================================
# Analysis
# =====================================================================


def analyze_table(data: list[dict], analysis_type: str = "comprehensive") -> dict:
    """
    Run one of the ``ANALYSIS_TYPES`` over a table.

    Raises:
        ValueError: On invalid data or an unknown analysis type.
    """
    validate_table_structure(data)
    if analysis_type not in ANALYSIS_TYPES:
        raise ValueError(f"Unknown analysis type: {analysis_type}")

    data = coerce_temporal(data)
    metadata = extract_table_metadata(data)
    analysis = {
        "type": analysis_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "metadata": metadata,
    }
    if analysis_type in ("comprehensive", "statistical"):
        analysis["statistics"] = _column_statistics(data, metadata)
    if analysis_type in ("comprehensive", "patterns"):
        analysis["patterns"] = _detect_patterns(data, metadata)
    if analysis_type in ("comprehensive", "anomalies"):
        analysis["anomalies"] = _detect_anomalies(data, metadata)
    return analysis


def _numeric_cells(data, column) -> list[tuple[int, float]]:
    """``(row_index, value)`` for every numeric cell of a column."""
    return [(i, row.get(column)) for i, row in enumerate(data) if st.is_number(row.get(column))]


def _outliers(cells) -> list[dict]:
    values = [v for _, v in cells]
    sd = st.std_dev(values)
    if not values or sd == 0:
        return []
    avg = st.mean(values)
    outliers = []
    for index, value in cells:
        z = abs((value - avg) / sd)
        if z > _OUTLIER_Z:
            outliers.append({"value": value, "rowIndex": index, "zScore": round(z, 4)})
    return outliers


def _column_statistics(data, metadata) -> dict:
    result = {}
    for column, stats in metadata["statistics"].items():
        cells = _numeric_cells(data, column)
        values = [v for _, v in cells]
        result[column] = {
            **stats,
            "skewness": st.skewness(values),
            "kurtosis": st.kurtosis(values),
            "outliers": _outliers(cells),
        }
    return result


def _detect_patterns(data, metadata) -> list[dict]:
    patterns = []
    for column, col_type in metadata["dataTypes"].items():
        if col_type != "date":
            continue
        stamps = [st.to_timestamp(row[column]) for row in data if row.get(column) is not None]
        if len(stamps) < 3:
            continue
        trend = st.linear_trend(stamps)
        if abs(trend["correlation"]) <= _TREND_MIN_R:
            continue
        direction = "increasing" if trend["slope"] > 0 else "decreasing"
        patterns.append(
            {
                "type": "trend",
                "column": column,
                "direction": direction,
                "strength": abs(trend["correlation"]),
                **trend,
                "description": f"{column} shows {direction} trend",
            }
        )
    return patterns


def _detect_anomalies(data, metadata) -> list[dict]:
    anomalies = []
    for column in metadata["statistics"]:
        for outlier in _outliers(_numeric_cells(data, column)):
            anomalies.append(
                {
                    "type": "outlier",
                    "column": column,
                    "value": outlier["value"],
                    "rowIndex": outlier["rowIndex"],
                    "zScore": outlier["zScore"],
                    "description": (
                        f"Outlier detected in {column}: {outlier['value']} "
                        f"({outlier['zScore']} sigma)"
                    ),
                }
            )
    return anomalies


def batch_analyze(datasets: list, analysis_type: str = "comprehensive") -> dict:
    """
    Analyze several tables; one failure does not stop the others.

    Each dataset is either a table or ``{"name", "data"}``.
    """
    if not isinstance(datasets, list) or not datasets:
        raise ValueError("Datasets must be a non-empty array")

    results = []
    for index, dataset in enumerate(datasets):
        name = f"dataset_{index}"
        rows = dataset
        if isinstance(dataset, dict):
            name = dataset.get("name") or name
            rows = dataset.get("data")
        try:
            results.append(
                {"index": index, "name": name, "success": True,
                 "result": analyze_table(rows, analysis_type)}
            )
        except ValueError as exc:
            results.append({"index": index, "name": name, "success": False, "error": str(exc)})

    successful = sum(1 for r in results if r["success"])
    return {
        "results": results,
        "processed": len(results),
        "successful": successful,
        "failed": len(results) - successful,
    }


# =====================================================================
# Storage
# =====================================================================


def _table_folder() -> str:
    folder = current_app.config["TABLE_DATA_FOLDER"]
    os.makedirs(folder, exist_ok=True)
    return folder


def _safe_name(filename: str) -> str:
    name = secure_filename(os.path.splitext(filename or "")[0])
    if not name:
        raise ValueError("A valid filename is required")
    return name


def _csv_cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        value = value.isoformat()
    text = str(value).lower() if isinstance(value, bool) else str(value)
    if "," in text or '"' in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def save_table(data: list[dict], filename: str, storage_format: str = "json") -> dict:
    """
    Write a table under ``TABLE_DATA_FOLDER``.

    JSON files hold ``{metadata, data, timestamp}``; CSV files hold a
    header line and one line per row.
    """
    validate_table_structure(data)
    if storage_format not in STORAGE_FORMATS:
        raise ValueError(f"Unsupported format: {storage_format}")

    path = os.path.join(_table_folder(), f"{_safe_name(filename)}.{storage_format}")
    if storage_format == "json":
        document = {
            "metadata": extract_table_metadata(data),
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(document, fh, ensure_ascii=False, indent=2, default=str)
    else:
        headers = list(data[0].keys())
        lines = [",".join(_csv_cell(h) for h in headers)]
        lines += [",".join(_csv_cell(row.get(h)) for h in headers) for row in data]
        with open(path, "w", encoding="utf-8", newline="") as fh:
            fh.write("\n".join(lines))

    size = os.path.getsize(path)
    logger.info("Saved table %s (%d rows, %d bytes)", os.path.basename(path), len(data), size)
    return {"success": True, "filePath": path, "format": storage_format, "size": size}


def _stored_path(filename: str) -> tuple[str, str]:
    """Locate a stored table by name, with or without extension."""
    name = _safe_name(filename)
    ext = os.path.splitext(filename)[1].lstrip(".").lower()
    candidates = [ext] if ext in STORAGE_FORMATS else list(STORAGE_FORMATS)
    folder = _table_folder()
    for storage_format in candidates:
        path = os.path.join(folder, f"{name}.{storage_format}")
        if os.path.isfile(path):
            return path, storage_format
    raise NotFoundError("Table file not found")


def load_table(filename: str):
    """Return the stored JSON document, or the parsed rows of a CSV file."""
    path, storage_format = _stored_path(filename)
    with open(path, encoding="utf-8") as fh:
        if storage_format == "json":
            return json.load(fh)
        return parse_csv(fh.read())


def list_tables() -> list[dict]:
    """Stored tables, newest first."""
    folder = _table_folder()
    tables = []
    for entry in os.scandir(folder):
        ext = os.path.splitext(entry.name)[1].lstrip(".").lower()
        if not entry.is_file() or ext not in STORAGE_FORMATS:
            continue
        info = entry.stat()
        tables.append(
            {
                "filename": entry.name,
                "format": ext,
                "size": info.st_size,
                "created": datetime.fromtimestamp(info.st_ctime, timezone.utc).isoformat(),
                "modified": datetime.fromtimestamp(info.st_mtime, timezone.utc).isoformat(),
            }
        )
    return sorted(tables, key=lambda t: t["created"], reverse=True)


def delete_table(filename: str) -> None:
    path, _ = _stored_path(filename)
    os.remove(path)
    logger.info("Deleted table %s", os.path.basename(path))


def get_status() -> dict:
    """Capabilities of the table service, for the status endpoint."""
    return {
        "status": "active",
        "parseFormats": list(PARSE_FORMATS),
        "storageFormats": list(STORAGE_FORMATS),
        "analysisTypes": list(ANALYSIS_TYPES),
        "matrixOperations": [
            "multiply", "transpose", "determinant", "inverse", "statistics",
        ],
        "storedTables": len(list_tables()),
    }
