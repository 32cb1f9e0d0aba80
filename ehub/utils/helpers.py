"""Shared parsing helpers for request payloads and service inputs.

parse_date:     lenient, returns None on bad input (optional fields)
parse_decimal:  bounded numeric input -> unrounded Decimal (hours, quantities)
parse_amount:   monetary input -> Decimal(2dp), raises ValidationError
parse_whole:    whole-number input (percentages), raises ValidationError
"""
import logging
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ehub.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")

# Numeric(15, 2) money columns hold 13 integer digits.
MAX_AMOUNT = Decimal("1e13")


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def quantize_money(value: Decimal) -> Decimal:
    """Round half-up to two decimal places."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def parse_decimal(value, field: str, *, default=None, allow_negative=False, limit=MAX_AMOUNT) -> Decimal:
    """Parse a finite number into an unrounded Decimal.

    Floats go through ``str()`` first so 0.1 stays 0.1 rather than its
    binary expansion.  Magnitudes at or above ``limit`` are rejected.

    Raises:
        ValidationError: when the value is missing (and no default), not a
            number, out of range, or negative while ``allow_negative`` is
            False.
    """
    if value is None or value == "":
        if default is not None:
            return Decimal(default)
        raise ValidationError(f"{field} is required", details={field: "required"})
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", details={field: "not a number"})
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", details={field: "not a number"})
    if not number.is_finite():
        raise ValidationError(f"{field} must be a number", details={field: "not a number"})
    if abs(number) >= limit:
        raise ValidationError(f"{field} must be less than {limit:,.0f}", details={field: "out of range"})
    if number < 0 and not allow_negative:
        raise ValidationError(f"{field} must not be negative", details={field: "must be >= 0"})
    return number


def parse_amount(value, field: str, *, default=None, allow_negative=False, limit=MAX_AMOUNT) -> Decimal:
    """Parse a monetary amount into a 2dp Decimal (see ``parse_decimal``)."""
    number = parse_decimal(value, field, default=default, allow_negative=allow_negative, limit=limit)
    try:
        return quantize_money(number)
    except InvalidOperation:
        raise ValidationError(f"{field} is out of range", details={field: "out of range"})


def parse_whole(value, field: str, *, minimum=None, maximum=None) -> int:
    """Parse a whole number, accepting "25", 25 and 25.0.

    Raises:
        ValidationError: on non-integral input or a bound violation.
    """
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError(f"{field} is required", details={field: "required"})
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a whole number", details={field: "not a number"})
    if not number.is_finite() or number != number.to_integral_value():
        raise ValidationError(f"{field} must be a whole number", details={field: "not a whole number"})
    result = int(number)
    if minimum is not None and result < minimum:
        raise ValidationError(
            f"{field} must be between {minimum} and {maximum}" if maximum is not None
            else f"{field} must be at least {minimum}",
            details={field: "out of range"},
        )
    if maximum is not None and result > maximum:
        raise ValidationError(
            f"{field} must be between {minimum} and {maximum}" if minimum is not None
            else f"{field} must be at most {maximum}",
            details={field: "out of range"},
        )
    return result


def parse_id(value, field: str) -> int:
    """Parse a required positive integer id."""
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer id", details={field: "invalid id"})
    if isinstance(value, bool) or result <= 0:
        raise ValidationError(f"{field} must be an integer id", details={field: "invalid id"})
    return result


def clean_text(value) -> str | None:
    """Strip a free-text field; empty strings become None."""
    return (str(value).strip() or None) if value is not None else None
