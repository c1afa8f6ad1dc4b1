from __future__ import annotations

from decimal import Decimal
from typing import Any

from app.quantities import QuantityRangeError, to_decimal


# Largest single payment / quantity accepted from a client: 9,999,999.99
MAX_DECIMAL_VALUE = Decimal("9999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., closing a closed session)."""


def require_object(payload: Any) -> dict:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def require_fields(payload: dict, *fields: str) -> None:
    """
    Presence check in request order, so the message lists fields the way
    the client sent them. Empty strings count as missing.
    """
    missing = [f for f in fields if payload.get(f) is None or payload.get(f) == ""]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def parse_id(value: Any, field: str) -> int:
    """
    Strict integer id. Rejects floats, booleans, scientific notation and
    anything non-positive.
    """
    if value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or not stripped.isdigit():
            raise ValidationError(f"{field} must be an integer")
        result = int(stripped)
    else:
        # Floats included: 12.0 is not an id
        raise ValidationError(f"{field} must be an integer")
    if result <= 0:
        raise ValidationError(f"{field} must be positive")
    return result


def parse_optional_id(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return parse_id(value, field)


def parse_decimal(
    value: Any,
    field: str,
    *,
    positive: bool = False,
    non_negative: bool = False,
) -> Decimal:
    """Two-place Decimal from a JSON number or numeric string."""
    try:
        result = to_decimal(value)
    except QuantityRangeError:
        raise ValidationError(f"{field} is out of range")
    except ValueError:
        raise ValidationError(f"{field} must be a number")
    if abs(result) > MAX_DECIMAL_VALUE:
        raise ValidationError(f"{field} is out of range")
    if positive and result <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    if non_negative and result < 0:
        raise ValidationError(f"{field} cannot be negative")
    return result


def parse_optional_decimal(value: Any, field: str, **kwargs) -> Decimal | None:
    if value is None:
        return None
    return parse_decimal(value, field, **kwargs)


def parse_optional_str(value: Any, field: str, *, max_length: int = 255) -> str | None:
    if value is None:
        return None
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise ValidationError(f"{field} must be a string")
    text = str(value).strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text
