from __future__ import annotations

from typing import Any

from .errors import DomainError


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


class ValidationError(DomainError, ValueError):
    """400-level input problem, raised before any database work."""


def _coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for untyped input (JSON bodies, query args).

    Rejects booleans, floats, decimals and scientific notation.
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


def coerce_quantity(value: Any, field: str = "quantity") -> int:
    """Quantities are whole units and strictly positive."""
    if value is None:
        raise ValidationError(f"{field} is required")
    qty = _coerce_int(value, field)
    if qty <= 0:
        raise ValidationError(f"{field} must be > 0")
    return qty


def coerce_cents(value: Any, field: str, *, allow_zero: bool = False) -> int:
    """Money amounts are integer cents, positive unless allow_zero."""
    if value is None:
        raise ValidationError(f"{field} is required")
    cents = _coerce_int(value, field)
    if cents < 0 or (cents == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'>= 0' if allow_zero else '> 0'}")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")
    return cents


def require_id(value: Any, field: str) -> int:
    """Reference ids must be present positive integers."""
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    ref = _coerce_int(value, field)
    if ref <= 0:
        raise ValidationError(f"{field} must be a positive id")
    return ref


def optional_text(value: Any, field: str, max_length: int) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text
