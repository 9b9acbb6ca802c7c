# Overview: Query-string parsing shared by the API routes.

from __future__ import annotations

from datetime import datetime

from flask import request

from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, coerce_int


def date_range_args(start_key: str = "start_date", end_key: str = "end_date") -> tuple[datetime | None, datetime | None]:
    """Inclusive [start, end] range from ISO-8601 query parameters."""
    bounds = []
    for key in (start_key, end_key):
        raw = request.args.get(key)
        try:
            bounds.append(parse_iso_datetime(raw))
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
    return bounds[0], bounds[1]


def int_arg(key: str, default: int | None = None) -> int | None:
    raw = request.args.get(key)
    if raw is None or raw == "":
        return default
    return coerce_int(raw, key)


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload
