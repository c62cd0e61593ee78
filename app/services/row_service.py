"""
Row analysis service — profile a single row and compare it with the rest
of its table.

Pure functions over a table (list of row dicts).  ``ValueError`` is
raised for an invalid table or an out-of-range row index.
"""

import logging
import zlib
from collections import Counter
from datetime import date, datetime, timezone

from rapidfuzz.distance import Levenshtein

from app.services import statistics as st
from app.services.table_service import coerce_temporal

logger = logging.getLogger(__name__)

ANALYSIS_TYPES = ("comprehensive", "profile", "comparison", "anomalies", "similarity")

SIMILARITY_THRESHOLD = 0.7
NEAR_DUPLICATE_THRESHOLD = 0.9
FINGERPRINT_LENGTH = 100


def analyze_row(data: list[dict], row_index, analysis_type: str = "comprehensive") -> dict:
    """
    Analyze the row at ``row_index``.

    Returns:
        ``{rowIndex, analysisType, timestamp, row, metadata, results}``.

    Raises:
        ValueError: On an invalid table, an out-of-range index or an
                    unknown analysis type.
    """
    if (
        not isinstance(data, list)
        or not data
        or not isinstance(row_index, int)
        or isinstance(row_index, bool)
        or not 0 <= row_index < len(data)
        or not isinstance(data[row_index], dict)
    ):
        raise ValueError("Invalid row index or data")
    if analysis_type not in ANALYSIS_TYPES:
        raise ValueError(f"Unknown analysis type: {analysis_type}")

    data = coerce_temporal(data)
    row = data[row_index]
    runners = {
        "profile": lambda: row_profile(row),
        "comparison": lambda: compare_to_dataset(row, row_index, data),
        "anomalies": lambda: detect_anomalies(row, row_index, data),
        "similarity": lambda: find_similar_rows(row_index, data),
    }
    selected = list(runners) if analysis_type == "comprehensive" else [analysis_type]

    return {
        "rowIndex": row_index,
        "analysisType": analysis_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "row": row,
        "metadata": row_metadata(row, row_index, data),
        "results": {name: runners[name]() for name in selected},
    }


def _is_null(value) -> bool:
    return value is None or value == ""


def _text(value) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _percent(part, whole) -> str:
    return f"{(part / whole * 100) if whole else 0:.2f}%"


def column_types(row: dict) -> dict:
    return {
        column: "null" if _is_null(value) else st.value_type(value)
        for column, value in row.items()
    }


def row_metadata(row: dict, row_index: int, data: list[dict]) -> dict:
    total = len(row)
    filled = sum(1 for v in row.values() if not _is_null(v))
    return {
        "totalColumns": total,
        "nonNullColumns": filled,
        "nullColumns": total - filled,
        "completeness": _percent(filled, total),
        "columnTypes": column_types(row),
        "hasNulls": filled < total,
        "datasetSize": len(data),
        "rowPosition": row_index + 1,
    }


# =====================================================================
# Profile
# =====================================================================


def fingerprint(row: dict) -> str:
    """First 100 characters of the ``|``-joined cell texts."""
    return "|".join(_text(v) for v in row.values())[:FINGERPRINT_LENGTH]


def row_profile(row: dict) -> dict:
    types = column_types(row)
    total = len(row)
    nulls = sum(1 for t in types.values() if t == "null")
    density = _percent(total - nulls, total)

    return {
        "summary": {
            "totalColumns": total,
            "numericColumns": sum(1 for t in types.values() if t == "number"),
            "stringColumns": sum(1 for t in types.values() if t == "string"),
            "dateColumns": sum(1 for t in types.values() if t == "date"),
            "nullColumns": nulls,
        },
        "characteristics": {
            "density": density,
            "diversity": _diversity(row),
            "complexity": _complexity(row),
            "uniqueness": {
                "hash": zlib.crc32("|".join(_text(v) for v in row.values()).encode("utf-8")),
                "fingerprint": fingerprint(row),
            },
        },
        "quality": {
            "completeness": density,
            "consistency": _consistency(row),
            "validity": _validity(row),
        },
    }


def _diversity(row: dict) -> dict:
    values = [v for v in row.values() if v is not None]
    type_count = len({st.value_type(v) for v in values})
    value_count = len({_text(v) for v in values})
    return {
        "typeDiversity": type_count,
        "valueDiversity": value_count,
        "diversityScore": (type_count * value_count) / len(values) if values else 0.0,
    }


def _complexity(row: dict) -> dict:
    score = 0.0
    for value in row.values():
        if value is None:
            continue
        kind = st.value_type(value)
        if kind == "boolean":
            score += 0.5
        elif kind == "string":
            score += min(len(value) / 50, 2)
        elif kind == "date":
            score += 1.5
        else:
            score += 1
    level = "low" if score < 5 else "medium" if score < 10 else "high"
    return {"score": score, "level": level, "description": f"Complexity score: {score:.2f}"}


def _consistency(row: dict) -> dict:
    score, issues = 100, []
    for column, value in row.items():
        if isinstance(value, str) and not value.strip():
            score -= 5
            issues.append(f"Empty string in {column}")
        if isinstance(value, str) and len(value) > 1000:
            score -= 2
            issues.append(f"Unusually long string in {column}")
        lowered = str(column).lower()
        if (
            st.is_number(value)
            and value < 0
            and ("count" in lowered or "amount" in lowered)
        ):
            score -= 3
            issues.append(f"Negative value in {column}")
    level = "high" if score >= 90 else "medium" if score >= 70 else "low"
    return {"score": score, "issues": issues, "level": level}


def _validity(row: dict) -> dict:
    errors, warnings = [], []
    for column, value in row.items():
        if value is None:
            warnings.append(f"{column} is null")
        elif isinstance(value, str) and not value.strip():
            warnings.append(f"{column} is empty string")
        elif isinstance(value, float) and value != value:
            errors.append(f"{column} is NaN")
    return {"isValid": not errors, "errors": errors, "warnings": warnings}


# =====================================================================
# Comparison
# =====================================================================


def _numbers(data, column) -> list:
    return [row.get(column) for row in data if st.is_number(row.get(column))]


def percentile_rank(value, values) -> str:
    return _percent(sum(1 for v in values if v <= value), len(values))


def compare_to_dataset(row: dict, row_index: int, data: list[dict]) -> dict:
    size = len(data)
    statistics = {}
    for column, value in row.items():
        if not st.is_number(value):
            continue
        values = _numbers(data, column)
        avg, sd = st.mean(values), st.std_dev(values)
        statistics[column] = {
            "value": value,
            "mean": avg,
            "median": st.median(values),
            "stdDev": sd,
            "zScore": abs((value - avg) / sd) if sd else 0.0,
            "percentile": percentile_rank(value, values),
            "position": "above_average" if value > avg else "below_average",
        }

    return {
        "position": {
            "index": row_index,
            "percentile": _percent(row_index + 1, size),
            "position": "first_half" if row_index < size / 2 else "second_half",
            "rank": row_index + 1,
        },
        "statistics": statistics,
        "distribution": _distribution(row, data),
    }


def _distribution(row: dict, data: list[dict]) -> dict:
    categorical, numerical, temporal = {}, {}, {}
    total = len(data)
    for column, value in row.items():
        kind = st.value_type(value) if value is not None else "null"
        if kind == "string":
            frequency = Counter(_text(r.get(column)) for r in data)
            count = frequency[value]
            ranking = sorted(set(frequency.values()), reverse=True)
            categorical[column] = {
                "value": value,
                "frequency": count,
                "percentage": _percent(count, total),
                "rank": ranking.index(count) + 1,
                "uniqueness": (
                    "unique" if count == 1 else "rare" if count / total < 0.01 else "common"
                ),
            }
        elif kind == "number":
            values = _numbers(data, column)
            low, high = min(values), max(values)
            lower, upper = st.iqr_bounds(values)
            numerical[column] = {
                "value": value,
                "min": low,
                "max": high,
                "range": high - low,
                "position": _percent(value - low, high - low),
                "outlierCount": sum(1 for v in values if v < lower or v > upper),
                "isOutlier": value < lower or value > upper,
            }
        elif kind == "date":
            stamps = sorted(
                st.to_timestamp(r[column])
                for r in data
                if isinstance(r.get(column), (datetime, date))
            )
            own = st.to_timestamp(value)
            earlier = sum(1 for s in stamps if s < own)
            temporal[column] = {
                "value": value,
                "earliest": datetime.fromtimestamp(stamps[0], timezone.utc).isoformat(),
                "latest": datetime.fromtimestamp(stamps[-1], timezone.utc).isoformat(),
                "position": _percent(earlier, len(stamps)),
                "seasonality": _seasonality(value),
            }
    return {"categorical": categorical, "numerical": numerical, "temporal": temporal}


def _seasonality(value) -> dict:
    month = value.month
    if 3 <= month <= 5:
        season = "spring"
    elif 6 <= month <= 8:
        season = "summer"
    elif 9 <= month <= 11:
        season = "fall"
    else:
        season = "winter"
    return {
        "month": month,
        "season": season,
        "quarter": (month - 1) // 3 + 1,
        "dayOfWeek": value.weekday(),
        "dayOfMonth": value.day,
    }


# =====================================================================
# Anomalies
# =====================================================================


def detect_anomalies(row: dict, row_index: int, data: list[dict]) -> list[dict]:
    anomalies = []

    for column, value in row.items():
        if not st.is_number(value):
            continue
        lower, upper = st.iqr_bounds(_numbers(data, column))
        if value < lower or value > upper:
            anomalies.append(
                {
                    "type": "statistical_outlier",
                    "column": column,
                    "value": value,
                    "description": f"Statistical outlier detected in {column}: {value}",
                }
            )

    # Unique pairing of the first two string columns
    string_columns = [c for c, v in row.items() if isinstance(v, str)][:2]
    if len(string_columns) == 2:
        matches = sum(1 for r in data if all(r.get(c) == row[c] for c in string_columns))
        if matches == 1:
            combination = "|".join(f"{c}:{row[c]}" for c in string_columns)
            anomalies.append(
                {
                    "type": "rare_combination",
                    "combination": combination,
                    "count": matches,
                    "description": f"Unique combination found: {combination}",
                }
            )

    expected = row_index + 1
    for column, value in row.items():
        lowered = str(column).lower()
        if ("id" in lowered or "number" in lowered) and st.is_number(value):
            if abs(value - expected) > 1:
                anomalies.append(
                    {
                        "type": "sequence_break",
                        "column": column,
                        "expected": expected,
                        "actual": value,
                        "description": (
                            f"Sequence break in {column}: expected {expected}, found {value}"
                        ),
                    }
                )

    anomalies.extend(_quality_anomalies(row))
    return anomalies


def _quality_anomalies(row: dict) -> list[dict]:
    anomalies = []
    total = len(row)
    nulls = sum(1 for v in row.values() if _is_null(v))
    if total and nulls / total > 0.5:
        anomalies.append(
            {
                "type": "excessive_nulls",
                "nullCount": nulls,
                "totalCount": total,
                "percentage": _percent(nulls, total),
                "description": f"Excessive null values: {nulls}/{total} ({_percent(nulls, total)})",
            }
        )

    for column, value in row.items():
        if not isinstance(value, str) or not value:
            continue
        if value not in (value.lower(), value.upper(), value[0].upper() + value[1:].lower()):
            anomalies.append(
                {
                    "type": "format_inconsistency",
                    "column": column,
                    "value": value,
                    "description": f'Inconsistent case format in {column}: "{value}"',
                }
            )
        if value != value.strip():
            anomalies.append(
                {
                    "type": "whitespace_issue",
                    "column": column,
                    "value": value,
                    "description": f'Extra whitespace in {column}: "{value}"',
                }
            )
    return anomalies


# =====================================================================
# Similarity
# =====================================================================


def string_similarity(first: str, second: str) -> float:
    """``1 - distance / longer length``; two empty strings are identical."""
    return float(Levenshtein.normalized_similarity(first, second))


def find_similar_rows(row_index: int, data: list[dict]) -> dict:
    """Rows whose fingerprints are more than 70% similar, best first."""
    target = fingerprint(data[row_index])
    matches = []
    for index, other in enumerate(data):
        if index == row_index or not isinstance(other, dict):
            continue
        other_print = fingerprint(other)
        similarity = string_similarity(target, other_print)
        if similarity > SIMILARITY_THRESHOLD:
            matches.append(
                {
                    "rowIndex": index,
                    "similarity": similarity,
                    "fingerprint": other_print,
                    "row": other,
                    "matchType": (
                        "near_duplicate" if similarity > NEAR_DUPLICATE_THRESHOLD else "similar"
                    ),
                }
            )
    matches.sort(key=lambda m: m["similarity"], reverse=True)
    near = sum(1 for m in matches if m["matchType"] == "near_duplicate")

    return {
        "totalSimilar": len(matches),
        "nearDuplicates": near,
        "similarRows": matches[:10],
        "summary": {
            "hasDuplicates": near > 0,
            "maxSimilarity": matches[0]["similarity"] if matches else 0,
            "averageSimilarity": (
                sum(m["similarity"] for m in matches) / len(matches) if matches else 0
            ),
        },
    }
