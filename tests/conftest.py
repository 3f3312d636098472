"""Shared test fixtures for optionfolio."""

from datetime import date
from decimal import Decimal

import pytest

from optionfolio.db.repository import PortfolioRepository
from optionfolio.db.schema import create_schema
from optionfolio.models.enums import PriceSource
from optionfolio.models.prices import PriceObservation
from optionfolio.portfolio import Portfolio

TODAY = date(2024, 6, 15)
GRANT_DATE = date(2024, 1, 10)
REFERENCE = Decimal("25.50")
FUND = "KBC Equity Fund World"


class FixedClock:
    """A settable stand-in for date.today."""

    def __init__(self, today: date = TODAY):
        self.current = today

    def __call__(self) -> date:
        return self.current


@pytest.fixture
def db_conn(tmp_path):
    conn = create_schema(tmp_path / "test.db")
    yield conn
    conn.close()


@pytest.fixture
def repo(db_conn) -> PortfolioRepository:
    return PortfolioRepository(db_conn)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def portfolio(repo, clock) -> Portfolio:
    return Portfolio(repo, today=clock)


@pytest.fixture
def add_price(repo):
    """Store one observation for the default option identity."""

    def _add(price_date: date, value: str, grant_date: date = GRANT_DATE,
             reference: Decimal = REFERENCE, fund_name: str = FUND) -> None:
        repo.insert_price(
            PriceObservation(
                fund_name=fund_name,
                exercise_reference=reference,
                grant_date=grant_date,
                price_date=price_date,
                value=Decimal(value),
                source=PriceSource.FEED,
            )
        )

    return _add


@pytest.fixture
def sample_grant_id(portfolio) -> int:
    """100 options granted 2024-01-10 with automatic tax (300 at 30% of 10/option)."""
    return portfolio.add_grant(GRANT_DATE, REFERENCE, 100)
