"""
Column analysis service — statistics, distribution, patterns, anomalies
and quality of a single table column.

Every function is pure: it takes a table (list of row dicts) and a column
name and raises ``ValueError`` on bad input.  Null cells are counted by
the metadata and quality checks and ignored by everything else.
"""

import logging
from collections import Counter
from datetime import date, datetime, timezone

import numpy as np

from app.services import statistics as st
from app.services.table_service import coerce_temporal, validate_table_structure

logger = logging.getLogger(__name__)

ANALYSIS_TYPES = (
    "comprehensive",
    "statistics",
    "distribution",
    "patterns",
    "anomalies",
    "quality",
)

HISTOGRAM_BINS = 10
_DAY_SECONDS = 86400


# =====================================================================
# Entry point
# =====================================================================


def analyze_column(data: list[dict], column: str, analysis_type: str = "comprehensive") -> dict:
    """
    Analyze one column of a table.

    Args:
        data:          Table rows.
        column:        Column name; must be a key of the first row.
        analysis_type: One of ``ANALYSIS_TYPES``.

    Returns:
        ``{columnName, analysisType, timestamp, metadata, results}``.

    Raises:
        ValueError: On invalid data, an unknown column or type.
    """
    raw = extract_column(data, column)
    if analysis_type not in ANALYSIS_TYPES:
        raise ValueError(f"Unknown analysis type: {analysis_type}")

    values = [v for v in raw if v is not None]
    positions = [i for i, v in enumerate(raw) if v is not None]
    runners = {
        "statistics": lambda: column_statistics(values),
        "distribution": lambda: column_distribution(values),
        "patterns": lambda: detect_patterns(values),
        "anomalies": lambda: detect_anomalies(values, positions),
        "quality": lambda: assess_quality(raw),
    }
    selected = list(runners) if analysis_type == "comprehensive" else [analysis_type]

    return {
        "columnName": column,
        "analysisType": analysis_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "metadata": column_metadata(raw),
        "results": {name: runners[name]() for name in selected},
    }


def extract_column(data: list[dict], column: str) -> list:
    """Return every cell of ``column``, nulls included."""
    validate_table_structure(data)
    if not column or column not in data[0]:
        raise ValueError(f"Column not found: {column}")
    return [row.get(column) for row in coerce_temporal(data)]


def detect_data_type(values) -> str:
    """``empty`` for no values, the shared type, or ``mixed``."""
    if not values:
        return "empty"
    types = {st.value_type(v) for v in values}
    return types.pop() if len(types) == 1 else "mixed"


def column_metadata(raw: list) -> dict:
    values = [v for v in raw if v is not None]
    if not raw:
        return {"type": "empty", "count": 0, "uniqueCount": 0, "nullCount": 0}
    null_count = len(raw) - len(values)
    return {
        "type": detect_data_type(values),
        "count": len(values),
        "uniqueCount": len({str(v) for v in values}),
        "nullCount": null_count,
        "sampleValues": values[:10],
        "hasNulls": null_count > 0,
        "completeness": _percent(len(values), len(raw)),
    }


def _percent(part, whole) -> str:
    return f"{(part / whole * 100) if whole else 0:.2f}%"


# =====================================================================
# Statistics and distribution
# =====================================================================


def column_statistics(values: list) -> dict:
    col_type = detect_data_type(values)
    if col_type != "number":
        return {
            "type": col_type,
            "message": "Statistical analysis only available for numeric columns",
        }
    return {
        "count": len(values),
        "sum": float(np.sum(values)),
        "mean": st.mean(values),
        "median": st.median(values),
        "mode": st.mode(values),
        "min": float(min(values)),
        "max": float(max(values)),
        "range": float(max(values) - min(values)),
        "variance": st.variance(values),
        "standardDeviation": st.std_dev(values),
        "skewness": st.skewness(values),
        "kurtosis": st.kurtosis(values),
        "quartiles": st.quartiles(values),
        "percentiles": st.percentiles(values),
    }


def histogram(values: list, bins: int = HISTOGRAM_BINS) -> list[dict]:
    """
    Equal-width histogram of the numeric values.

    The last bin includes its upper edge.  A constant column yields a
    single bin holding every value.
    """
    numbers = [float(v) for v in values if st.is_number(v)]
    if not numbers:
        return []
    low, high = min(numbers), max(numbers)
    if low == high:
        return [
            {
                "bin": 1,
                "range": f"{low:.2f}-{high:.2f}",
                "min": low,
                "max": high,
                "count": len(numbers),
                "frequency": 1.0,
            }
        ]

    counts, edges = np.histogram(numbers, bins=bins, range=(low, high))
    return [
        {
            "bin": i + 1,
            "range": f"{edges[i]:.2f}-{edges[i + 1]:.2f}",
            "min": float(edges[i]),
            "max": float(edges[i + 1]),
            "count": int(counts[i]),
            "frequency": int(counts[i]) / len(numbers),
        }
        for i in range(bins)
    ]


def frequency_distribution(values: list) -> list[dict]:
    """Counts per distinct value (stringified), most frequent first."""
    total = len(values)
    counts = Counter(str(v) for v in values)
    return [
        {"value": value, "count": count, "percentage": count / total * 100}
        for value, count in counts.most_common()
    ]


def _sort_key(value):
    if st.is_number(value):
        return (0, float(value), "")
    if isinstance(value, (datetime, date)):
        return (0, st.to_timestamp(value), "")
    return (1, 0.0, str(value))


def cumulative_distribution(values: list) -> list[dict]:
    ordered = sorted(values, key=_sort_key)
    total = len(ordered)
    return [
        {
            "value": value,
            "rank": rank,
            "cumulativeCount": rank,
            "cumulativePercentage": rank / total * 100,
        }
        for rank, value in enumerate(ordered, start=1)
    ]


def normality(values: list) -> dict:
    """Rough normality check from skewness and excess kurtosis."""
    if len(values) < 3:
        return {"test": "insufficient_data", "p_value": None}
    skew, kurt = st.skewness(values), st.kurtosis(values)
    is_normal = abs(skew) < 0.5 and abs(kurt) < 0.5
    return {
        "test": "normality_approximation",
        "isNormal": is_normal,
        "skewness": skew,
        "kurtosis": kurt,
        "sampleSize": len(values),
        "message": (
            "Data appears normally distributed"
            if is_normal
            else "Data does not appear normally distributed"
        ),
    }


def column_distribution(values: list) -> dict:
    if not values:
        return {"type": "empty", "message": "No data to analyze"}
    col_type = detect_data_type(values)
    distribution = {
        "type": col_type,
        "histogram": histogram(values),
        "frequency": frequency_distribution(values),
        "cumulative": cumulative_distribution(values),
    }
    if col_type == "number":
        distribution["normality"] = normality(values)
        distribution["percentiles"] = st.percentiles(values)
    return distribution


# =====================================================================
# Patterns
# =====================================================================


def detect_patterns(values: list) -> list[dict]:
    col_type = detect_data_type(values)
    patterns = []
    if col_type == "number":
        for found in (sequential_pattern(values), cyclical_pattern(values)):
            if found["detected"]:
                patterns.append(found)
    elif col_type == "string":
        patterns.extend(categorical_patterns(values))
    elif col_type == "date":
        patterns.extend(temporal_patterns(values))
    return patterns


def sequential_pattern(values: list) -> dict:
    """Detect a constant step between consecutive values."""
    if len(values) < 3:
        return {"detected": False}
    steps = {values[i] - values[i - 1] for i in range(1, len(values))}
    is_sequential = len(steps) == 1
    step = steps.pop() if is_sequential else None
    return {
        "type": "sequential",
        "detected": is_sequential,
        "pattern": f"Sequential with step {step}" if is_sequential else "Non-sequential",
        "stepSize": step,
    }


def autocorrelation(values: list, lag: int) -> float:
    arr = np.asarray(values, dtype=float)
    n = arr.size
    variance = arr.var()
    if n <= lag or variance == 0:
        return 0.0
    centered = arr - arr.mean()
    return float(np.sum(centered[: n - lag] * centered[lag:]) / ((n - lag) * variance))


def cyclical_pattern(values: list) -> dict:
    """Best autocorrelation over periods ``2..n//3``; needs 10 values."""
    if len(values) < 10:
        return {"detected": False}
    best_period, best_strength = 1, 0.0
    for period in range(2, len(values) // 3 + 1):
        strength = autocorrelation(values, period)
        if strength > best_strength:
            best_period, best_strength = period, strength
    detected = best_strength > 0.3
    return {
        "type": "cyclical",
        "detected": detected,
        "period": best_period,
        "strength": best_strength,
        "description": (
            f"Cyclical pattern with period {best_period}"
            if detected
            else "No significant cyclical pattern"
        ),
    }


def categorical_patterns(values: list) -> list[dict]:
    counts = [item["count"] for item in frequency_distribution(values)]
    if len(counts) < 2:
        return []
    patterns = []

    # Zipf: cosine similarity against count[0] / rank
    expected = [counts[0] / rank for rank in range(1, len(counts) + 1)]
    zipf = float(
        np.dot(counts, expected) / np.sqrt(np.dot(counts, counts) * np.dot(expected, expected))
    )
    if zipf > 0.8:
        patterns.append(
            {"type": "zipf", "correlation": zipf, "description": "Follows Zipf distribution"}
        )

    top = int(len(counts) * 0.2)
    if top >= 1:
        share = sum(counts[:top]) / sum(counts)
        if share >= 0.8:
            patterns.append(
                {
                    "type": "pareto",
                    "top20Percentage": share,
                    "description": "Follows Pareto principle (80/20 rule)",
                }
            )

    spread = max(counts) - min(counts)
    tolerance = spread * 0.1
    midpoint = (max(counts) + min(counts)) / 2
    if all(abs(count - midpoint) <= tolerance for count in counts):
        patterns.append(
            {
                "type": "uniform",
                "range": spread,
                "tolerance": tolerance,
                "description": "Appears uniformly distributed",
            }
        )
    return patterns


def temporal_patterns(values: list) -> list[dict]:
    """Seasonal, trend and weekly patterns over date values."""
    patterns = []

    monthly = Counter(f"{v.year:04d}-{v.month:02d}" for v in values)
    months = sorted(monthly)
    growth = [
        (monthly[months[i]] - monthly[months[i - 1]]) / monthly[months[i - 1]] * 100
        for i in range(1, len(months))
    ]
    if any(abs(g) > 20 for g in growth):
        patterns.append(
            {
                "type": "seasonal",
                "pattern": "Seasonal variation detected",
                "monthOverMonthGrowth": growth,
            }
        )

    stamps = sorted(st.to_timestamp(v) for v in values)
    half = len(stamps) // 2
    if half:
        trend = float(np.mean(stamps[half:]) - np.mean(stamps[:half]))
        if abs(trend) > _DAY_SECONDS:
            direction = "increasing" if trend > 0 else "decreasing"
            patterns.append(
                {
                    "type": "trend",
                    "pattern": f"{direction.capitalize()} trend",
                    "magnitudeSeconds": abs(trend),
                    "description": f"Trend detected: {direction}",
                }
            )

    weekly = Counter(v.weekday() for v in values)
    average = len(values) / 7
    if any(abs(weekly.get(day, 0) - average) / average > 0.3 for day in weekly):
        patterns.append(
            {
                "type": "weekly",
                "pattern": "Weekly variation detected",
                "weeklyData": {str(day): weekly[day] for day in sorted(weekly)},
            }
        )
    return patterns


# =====================================================================
# Anomalies and quality
# =====================================================================


def detect_anomalies(values: list, row_indexes: list[int] | None = None) -> list[dict]:
    """
    Anomalies among the non-null ``values`` of a column.

    ``row_indexes`` holds the table row of each value; without it the
    reported ``rowIndex`` is the position in ``values``.
    """
    col_type = detect_data_type(values)
    if col_type == "number":
        return _numeric_anomalies(values, row_indexes)
    if col_type == "string":
        return _categorical_anomalies(values)
    if col_type == "date":
        return _temporal_anomalies(values)
    return []


def _numeric_anomalies(values: list, row_indexes: list[int] | None = None) -> list[dict]:
    lower, upper = st.iqr_bounds(values)
    rows = row_indexes if row_indexes is not None else range(len(values))
    anomalies = [
        {
            "type": "outlier",
            "value": value,
            "rowIndex": index,
            "method": "IQR",
            "bounds": {"lower": lower, "upper": upper},
            "description": f"Outlier detected: {value} (bounds: {lower}-{upper})",
        }
        for index, value in zip(rows, values)
        if value < lower or value > upper
    ]

    zeros = sum(1 for v in values if v == 0)
    if zeros > len(values) * 0.1:
        anomalies.append(
            {
                "type": "zero_values",
                "count": zeros,
                "percentage": _percent(zeros, len(values)),
                "description": f"High number of zero values: {zeros} ({_percent(zeros, len(values))})",
            }
        )
    return anomalies


def _categorical_anomalies(values: list) -> list[dict]:
    frequency = frequency_distribution(values)
    threshold = len(values) * 0.01
    anomalies = [
        {
            "type": "rare_category",
            "value": item["value"],
            "count": item["count"],
            "percentage": item["percentage"],
            "description": f"Rare category: {item['value']} ({item['count']} occurrences)",
        }
        for item in frequency
        if item["count"] < threshold
    ]
    singles = [item["value"] for item in frequency if item["count"] == 1]
    if singles:
        anomalies.append(
            {
                "type": "single_occurrences",
                "count": len(singles),
                "items": singles,
                "description": f"{len(singles)} categories appear only once",
            }
        )
    return anomalies


def _temporal_anomalies(values: list) -> list[dict]:
    ordered = sorted(values, key=st.to_timestamp)
    anomalies = []
    for previous, current in zip(ordered, ordered[1:]):
        gap = st.to_timestamp(current) - st.to_timestamp(previous)
        if gap > 7 * _DAY_SECONDS:
            days = int(gap // _DAY_SECONDS)
            anomalies.append(
                {
                    "type": "time_gap",
                    "from": previous,
                    "to": current,
                    "gapDays": days,
                    "description": f"Time gap: {days} days",
                }
            )

    duplicates = [stamp for stamp, count in Counter(map(st.to_timestamp, values)).items() if count > 1]
    if duplicates:
        anomalies.append(
            {
                "type": "duplicate_timestamps",
                "count": len(duplicates),
                "description": f"{len(duplicates)} duplicate timestamps found",
            }
        )
    return anomalies


def assess_quality(raw: list) -> dict:
    """Completeness and uniqueness of a column, nulls included."""
    total = len(raw)
    values = [v for v in raw if v is not None and v != ""]
    unique = len({str(v) for v in values})
    return {
        "totalCount": total,
        "nullCount": total - len(values),
        "completeness": _percent(len(values), total),
        "uniqueCount": unique,
        "uniquenessRatio": unique / len(values) if values else 0.0,
    }
