from __future__ import annotations

from typing import Any


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., email already used in the store)."""


class NotFoundError(LookupError):
    """404-level: the record does not exist in the caller's store."""


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for request payloads.

    Rejects booleans, floats, decimals-in-strings and scientific notation so a
    quantity of "1.5" or 1e3 never silently becomes an integer.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_optional_int(value: Any, field: str) -> int | None:
    if value is None:
        return None
    return coerce_int(value, field)


def require_positive_quantity(value: Any, field: str = "quantity") -> int:
    quantity = coerce_int(value, field)
    if quantity < 1:
        raise ValidationError(f"{field} must be at least 1")
    return quantity


def require_text(value: Any, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()


def optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def validate_price_cents(value: Any, field: str = "price_cents") -> int:
    price = coerce_int(value, field)
    if price < 0:
        raise ValidationError(f"{field} cannot be negative")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_PRICE_CENTS}")
    return price
