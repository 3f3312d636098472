"""Custom exceptions for optionfolio."""

from datetime import date
from decimal import Decimal


class PortfolioError(Exception):
    """Base exception for portfolio ledger errors."""


class DataValidationError(PortfolioError):
    """Raised when input data fails validation."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error on '{field}': {message}")


class CapacityError(PortfolioError):
    """Raised when a sale requires more options than remain on a grant."""

    def __init__(self, grant_id: int, requested: int, available: int):
        self.grant_id = grant_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Cannot sell {requested} options from grant {grant_id}: "
            f"only {available} available"
        )


class NotFoundError(PortfolioError):
    """Raised when a referenced record does not exist."""


class GrantNotFoundError(NotFoundError):
    """Raised when an operation references a grant that doesn't exist."""

    def __init__(self, grant_id: int):
        self.grant_id = grant_id
        super().__init__(f"Grant not found: {grant_id}")


class SaleNotFoundError(NotFoundError):
    """Raised when an operation references a sale that doesn't exist."""

    def __init__(self, sale_id: int):
        self.sale_id = sale_id
        super().__init__(f"Sale not found: {sale_id}")


class ConsistencyError(PortfolioError):
    """Raised when a write did not touch exactly the rows it targeted."""

    def __init__(self, table: str, key: object, rowcount: int):
        self.table = table
        self.key = key
        self.rowcount = rowcount
        super().__init__(
            f"Update of {table} {key} affected {rowcount} rows, expected 1"
        )


class PriceUnavailableError(PortfolioError):
    """Raised when no price data exists at all for an option identity."""

    def __init__(self, exercise_reference: Decimal, grant_date: date | None = None):
        self.exercise_reference = exercise_reference
        self.grant_date = grant_date
        if grant_date is None:
            super().__init__(f"No price available for exercise reference {exercise_reference}")
        else:
            super().__init__(
                f"No price available for exercise reference {exercise_reference} "
                f"granted {grant_date.isoformat()}"
            )


class PriceImportError(PortfolioError):
    """Raised when a price file cannot be read."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"Price import error from {source}: {message}")
