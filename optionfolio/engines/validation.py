"""Input coercion shared by the ledger and sale engines."""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from optionfolio.exceptions import DataValidationError


def require_date(value: object, field: str) -> date:
    """Accept a date, datetime or ISO string."""
    if value is None or value == "":
        raise DataValidationError(field, "is required")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise DataValidationError(field, f"invalid date {value!r}") from None
    raise DataValidationError(field, f"invalid date {value!r}")


def require_decimal(value: object, field: str) -> Decimal:
    if value is None or value == "" or isinstance(value, bool):
        raise DataValidationError(field, "is required")
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation:
        raise DataValidationError(field, f"not a number: {value!r}") from None
    if not result.is_finite():
        raise DataValidationError(field, f"not a finite number: {value!r}")
    return result


def require_positive_decimal(value: object, field: str) -> Decimal:
    result = require_decimal(value, field)
    if result <= 0:
        raise DataValidationError(field, f"must be positive, got {result}")
    return result


def require_positive_int(value: object, field: str) -> int:
    if value is None:
        raise DataValidationError(field, "is required")
    if isinstance(value, bool) or not isinstance(value, int):
        raise DataValidationError(field, f"must be a whole number, got {value!r}")
    if value <= 0:
        raise DataValidationError(field, f"must be positive, got {value}")
    return value


def optional_tax(value: object, field: str) -> Decimal | None:
    """A manual tax figure: absent, or a non-negative amount."""
    if value is None:
        return None
    result = require_decimal(value, field)
    if result < 0:
        raise DataValidationError(field, f"cannot be negative, got {result}")
    return result
