import math
from datetime import date, datetime

from flask import request

from utils.errors import ValidationError


def json_body():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_fields(data: dict, fields: list):
    missing = [f for f in fields if f not in data or data.get(f) in (None, "", [])]
    if missing:
        raise ValidationError("Validation failed", errors={"missing_fields": missing})


def parse_text(value, field, default=None, strip=True):
    """String value, stripped unless told otherwise; anything else is a validation error."""
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError("Validation failed", errors={field: "must be a string"})
    return value.strip() if strip else value


def require_choice(data: dict, field: str, choices, default=None):
    value = data.get(field, default)
    if value is None:
        return default
    if value not in choices:
        raise ValidationError(
            "Validation failed",
            errors={field: f"must be one of: {', '.join(choices)}"}
        )
    return value


def parse_date(value, field="date"):
    """
    Normalizes a date-ish value to a calendar date.

    Accepts date objects, datetimes (time of day is dropped) and strings in
    YYYY-MM-DD or full ISO 8601 form.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError("Validation failed", errors={field: f"Invalid date: {value}"})


def parse_hours(value, field="hours_spent"):
    if value is None or value == "":
        return None
    try:
        hours = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Validation failed", errors={field: "must be a number"})
    if not math.isfinite(hours):
        raise ValidationError("Validation failed", errors={field: "must be a finite number"})
    if hours < 0:
        raise ValidationError("Validation failed", errors={field: "must not be negative"})
    return hours


def parse_int(value, field, default=None, minimum=None, maximum=None):
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Validation failed", errors={field: "must be an integer"})
    if minimum is not None and number < minimum:
        raise ValidationError("Validation failed", errors={field: f"must be at least {minimum}"})
    if maximum is not None and number > maximum:
        raise ValidationError("Validation failed", errors={field: f"must be at most {maximum}"})
    return number
