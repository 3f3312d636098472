"""KBC adapter for the broker's option product-list CSV."""

import csv
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path

from optionfolio.exceptions import PriceImportError
from optionfolio.ingestion.base import BasePriceAdapter
from optionfolio.models.prices import PriceRecord

logger = logging.getLogger(__name__)

# Positional columns; the export has no header row.
_COL_GRANT_DATE = 2
_COL_EXERCISE_PRICE = 3
_COL_CURRENT_VALUE = 5
_COL_PRICE_DATE = 6
_COL_FUND_NAME = 7
_MIN_COLUMNS = 8

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y")


def _parse_date(value: str) -> date | None:
    """Parse an ISO or day-first date. Returns None for blank or unknown formats."""
    stripped = value.strip()
    if not stripped:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(stripped, fmt).date()
        except ValueError:
            continue
    return None


def _decimal_or_none(value: str) -> Decimal | None:
    """Convert a string value to Decimal, returning None for empty/invalid."""
    stripped = value.strip()
    if not stripped:
        return None
    try:
        result = Decimal(stripped)
    except InvalidOperation:
        return None
    return result if result.is_finite() else None


class KBCPriceListAdapter(BasePriceAdapter):
    """Parses the headerless option price list downloaded from KBC.

    Rows without a positive exercise price, a positive value, parseable
    dates or a fund name are skipped.
    """

    def parse(self, file_path: Path) -> list[PriceRecord]:
        try:
            with open(file_path, newline="", encoding="utf-8-sig") as f:
                rows = list(csv.reader(f))
        except (OSError, UnicodeDecodeError) as exc:
            raise PriceImportError(str(file_path), str(exc)) from exc

        records = []
        skipped = 0
        for row in rows:
            record = self._parse_row(row)
            if record is None:
                if any(cell.strip() for cell in row):
                    skipped += 1
                continue
            records.append(record)
        if skipped:
            logger.warning("Skipped %d unusable rows in %s", skipped, file_path)
        return records

    def _parse_row(self, row: list[str]) -> PriceRecord | None:
        if len(row) < _MIN_COLUMNS:
            return None
        exercise_price = _decimal_or_none(row[_COL_EXERCISE_PRICE])
        value = _decimal_or_none(row[_COL_CURRENT_VALUE])
        grant_date = _parse_date(row[_COL_GRANT_DATE])
        price_date = _parse_date(row[_COL_PRICE_DATE])
        fund_name = row[_COL_FUND_NAME].strip()
        if (
            exercise_price is None
            or exercise_price <= 0
            or value is None
            or value <= 0
            or grant_date is None
            or price_date is None
            or not fund_name
        ):
            return None
        return PriceRecord(
            fund_name=fund_name,
            exercise_reference=exercise_price,
            grant_date=grant_date,
            price_date=price_date,
            value=value,
        )

    def validate(self, records: list[PriceRecord]) -> list[str]:
        errors = []
        if not records:
            errors.append("No valid price rows found")
        for record in records:
            if record.price_date < record.grant_date:
                errors.append(
                    f"{record.fund_name} {record.exercise_reference}: price date "
                    f"{record.price_date} precedes grant date {record.grant_date}"
                )
        return errors
