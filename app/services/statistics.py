"""
Descriptive statistics helpers built on numpy.

All dispersion measures are population measures (divide by ``n``).
Helpers return plain Python floats so results serialize to JSON
without numpy scalar types leaking out.
"""

from datetime import date, datetime

import numpy as np


def is_number(value) -> bool:
    """True for int/float values, excluding bools."""
    return isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(
        value, bool
    )


def value_type(value) -> str:
    """Classify a parsed cell value."""
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, (datetime, date)):
        return "date"
    if isinstance(value, str):
        return "string"
    return "object"


def to_timestamp(value) -> float:
    """Seconds since the epoch for a date or datetime."""
    if isinstance(value, datetime):
        return value.timestamp()
    return datetime(value.year, value.month, value.day).timestamp()


def mean(values) -> float:
    return float(np.mean(np.asarray(values, dtype=float)))


def median(values) -> float:
    return float(np.median(np.asarray(values, dtype=float)))


def variance(values) -> float:
    return float(np.var(np.asarray(values, dtype=float)))


def std_dev(values) -> float:
    return float(np.std(np.asarray(values, dtype=float)))


def skewness(values) -> float:
    """Population skewness; 0 when the values have no spread."""
    arr = np.asarray(values, dtype=float)
    sd = arr.std()
    if arr.size == 0 or sd == 0:
        return 0.0
    return float(np.mean(((arr - arr.mean()) / sd) ** 3))


def kurtosis(values) -> float:
    """Excess kurtosis (normal = 0); 0 when the values have no spread."""
    arr = np.asarray(values, dtype=float)
    sd = arr.std()
    if arr.size == 0 or sd == 0:
        return 0.0
    return float(np.mean(((arr - arr.mean()) / sd) ** 4) - 3)


def quartiles(values) -> dict:
    """Nearest-rank quartiles using ``floor(n * p)`` indexes."""
    ordered = sorted(float(v) for v in values)
    n = len(ordered)
    q1 = ordered[int(n * 0.25)]
    q2 = ordered[int(n * 0.5)]
    q3 = ordered[min(int(n * 0.75), n - 1)]
    return {"q1": q1, "q2": q2, "q3": q3, "iqr": q3 - q1}


def percentiles(values, points=(1, 5, 10, 25, 50, 75, 90, 95, 99)) -> dict:
    """Nearest-rank percentiles using ``floor(p/100 * (n - 1))`` indexes."""
    ordered = sorted(float(v) for v in values)
    last = len(ordered) - 1
    return {str(p): ordered[int(p / 100 * last)] for p in points}


def iqr_bounds(values) -> tuple[float, float]:
    """Tukey fences ``(q1 - 1.5*iqr, q3 + 1.5*iqr)``."""
    quart = quartiles(values)
    return quart["q1"] - 1.5 * quart["iqr"], quart["q3"] + 1.5 * quart["iqr"]


def mode(values):
    """Most frequent value; the first seen wins ties."""
    counts: dict = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    best, best_count = None, 0
    for value, count in counts.items():
        if count > best_count:
            best, best_count = value, count
    return best


def linear_trend(y_values) -> dict:
    """
    Least-squares fit of ``y`` against its position ``0..n-1``.

    Returns slope, intercept and Pearson ``r`` (0 when either side has
    no variance).
    """
    y = np.asarray(y_values, dtype=float)
    x = np.arange(y.size, dtype=float)
    x_c, y_c = x - x.mean(), y - y.mean()
    sxx, syy = float(np.sum(x_c**2)), float(np.sum(y_c**2))
    sxy = float(np.sum(x_c * y_c))
    slope = sxy / sxx if sxx else 0.0
    intercept = float(y.mean() - slope * x.mean())
    r = sxy / np.sqrt(sxx * syy) if sxx and syy else 0.0
    return {"slope": slope, "intercept": intercept, "correlation": float(r)}
