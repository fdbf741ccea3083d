# Overview: JSON payload validation for the HTTP adapter, driven by model column metadata.

"""
Payload validation.

Each route declares a ModelValidationPolicy naming the fields a client may
send for one model. validate_payload checks the payload against that
allowlist and coerces every value using the model's column type, so
"quantity": "3" becomes 3 and "period_end": "2024-03-31" becomes a date.

Business rules (signed quantities, payout states) stay in the services;
this layer only rejects malformed input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import Date, Integer, String, Text

from .errors import ValidationError


# 9,999,999.99 in cents
MAX_AMOUNT_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    writable_fields: keys a client is allowed to send
    required_on_create: keys that must be present when partial=False
    """
    writable_fields: frozenset[str] | set[str]
    required_on_create: frozenset[str] | set[str] = field(default_factory=frozenset)


def _as_int(key: str, value) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if isinstance(value, str):
        text = value.strip()
        # "1e3" and "2.0" are rejected; amounts and quantities are whole numbers
        sign, digits = (text[0], text[1:]) if text and text[0] in "+-" else ("", text)
        if digits.isdigit():
            return int(sign + digits)
    raise ValidationError(f"{key} must be an integer")


def _as_date(key: str, value) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"{key} must be an ISO-8601 date (YYYY-MM-DD)")


def _coerce(column, value):
    coltype = column.type
    if isinstance(coltype, Integer):
        return _as_int(column.key, value)
    if isinstance(coltype, Date):
        return _as_date(column.key, value)
    if isinstance(coltype, (String, Text)):
        text = str(value).strip()
        if text == "" and not column.nullable:
            raise ValidationError(f"{column.key} cannot be blank")
        length = getattr(coltype, "length", None)
        if length and len(text) > length:
            raise ValidationError(f"{column.key} exceeds max length {length}")
        return text
    return value


def validate_payload(*, model, payload, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Return a cleaned dict holding only the allowed, coerced fields.

    partial=False enforces policy.required_on_create (create semantics);
    partial=True validates only the keys present (patch semantics).
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    unknown = sorted(k for k in payload if k not in policy.writable_fields)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    if not partial:
        missing = sorted(k for k in policy.required_on_create if payload.get(k) is None)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    cleaned = {}
    for key, value in payload.items():
        column = columns.get(key)
        if column is None:
            raise ValidationError(f"Unknown field: {key}")
        if value is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            cleaned[key] = None
        else:
            cleaned[key] = _coerce(column, value)
    return cleaned


def enforce_rules_amounts(patch: dict) -> None:
    """Every *_cents value must lie in [0, MAX_AMOUNT_CENTS]."""
    for key, value in patch.items():
        if not key.endswith("_cents") or value is None:
            continue
        if value < 0:
            raise ValidationError(f"{key} must be >= 0")
        if value > MAX_AMOUNT_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS}")
