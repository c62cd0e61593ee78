"""
JSON response helpers shared by every API blueprint.

All successful responses use the same envelope::

    {"status": "success", "data": {...}, "message": "..."}

Paginated list endpoints add a ``pagination`` block alongside the items.
"""

import math
from datetime import date, datetime
from decimal import Decimal

import numpy as np
from flask import jsonify, request
from flask.json.provider import DefaultJSONProvider

from app.errors import ValidationError


class ApiJSONProvider(DefaultJSONProvider):
    """
    JSON provider emitting ISO dates, float decimals and plain numpy
    scalars and arrays.
    """

    sort_keys = False

    @staticmethod
    def default(o):
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        if isinstance(o, Decimal):
            return float(o)
        if isinstance(o, np.generic):
            return o.item()
        if isinstance(o, np.ndarray):
            return o.tolist()
        return DefaultJSONProvider.default(o)


def success(data=None, message: str | None = None, status_code: int = 200):
    """Build a success envelope response."""
    body = {"status": "success"}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return jsonify(body), status_code


def pagination_meta(page: int, limit: int, total: int) -> dict:
    """Return the pagination block for a list response."""
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }


def paginated(key: str, items: list, page: int, limit: int, total: int):
    """Build a success envelope for one page of ``items``."""
    return success({key: items, "pagination": pagination_meta(page, limit, total)})


def page_args(default_limit: int = 10, max_limit: int = 100) -> tuple[int, int]:
    """Read ``page`` and ``limit`` query arguments with sane bounds."""
    page = max(request.args.get("page", 1, type=int) or 1, 1)
    limit = request.args.get("limit", default_limit, type=int) or default_limit
    return page, min(max(limit, 1), max_limit)


def get_json_body() -> dict:
    """
    Return the request JSON object.

    Raises:
        ValidationError: If the body is missing or not a JSON object.
    """
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def require_fields(payload: dict, *fields: str) -> None:
    """Raise a 400 naming every field in ``fields`` that is blank."""
    missing = [
        name for name in fields if payload.get(name) is None or payload.get(name) == ""
    ]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
