# Overview: Request parsing helpers shared by API routes and CLI commands.

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_date


# Maximum amount: 9,999,999.99 (999,999,999 minor units)
# This prevents database overflow issues and nonsensical fees
MAX_AMOUNT_CENTS = 999_999_999

PHONE_RE = re.compile(r"^[0-9]{10}$")


def parse_cents(value: Any, field: str, *, required: bool = True, allow_zero: bool = True) -> int | None:
    """
    Strict integer parsing for amounts in minor units.

    Rejects floats, booleans, decimals and scientific notation; money never
    crosses the API as a float.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")

    if isinstance(value, int):
        cents = value
    elif isinstance(value, str):
        stripped = value.strip()
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            cents = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if cents < 0:
        raise ValidationError(f"{field} cannot be negative")
    if cents == 0 and not allow_zero:
        raise ValidationError(f"{field} must be greater than zero")
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")
    return cents


def parse_decimal(value: Any, field: str) -> Decimal:
    """Parse a percentage-like number; floats go through str() first."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def parse_id(value: Any, field: str, *, required: bool = True) -> int | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive integer")
    try:
        ident = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a positive integer")
    if ident <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return ident


def parse_visit_date(value: Any, *, today: date, allow_future: bool = False) -> date:
    if not isinstance(value, str):
        raise ValidationError("visit_date is required (YYYY-MM-DD)")
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        raise ValidationError("visit_date must be a valid date (YYYY-MM-DD)")
    if parsed is None:
        raise ValidationError("visit_date is required (YYYY-MM-DD)")
    if not allow_future and parsed > today:
        raise ValidationError("visit_date cannot be in the future")
    return parsed


def parse_bool(value: Any, field: str, *, default: bool = False) -> bool:
    """JSON booleans only; strings like "false" are rejected, not coerced."""
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false")
    return value


def clean_text(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def normalize_phone(value: Any) -> str | None:
    """Strip whitespace; None for blank. Raises on anything but 10 digits."""
    raw = clean_text(value)
    if raw is None:
        return None
    phone = re.sub(r"\s+", "", raw)
    if not PHONE_RE.match(phone):
        raise ValidationError("Phone must be a valid 10-digit number")
    return phone
