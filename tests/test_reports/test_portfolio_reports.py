"""Tests for the portfolio summary and evolution text reports."""

from datetime import date
from decimal import Decimal

import pytest

from optionfolio.models.enums import SellingStatus
from optionfolio.models.views import EvolutionLine, OverviewLine
from optionfolio.reports import EvolutionReportGenerator, PortfolioSummaryGenerator
from optionfolio.reports.portfolio_summary import money


@pytest.fixture
def overview_lines() -> list[OverviewLine]:
    common = dict(
        grant_date=date(2024, 1, 10),
        selling_status=SellingStatus.WAITING_PERIOD,
        can_sell_after=date(2025, 1, 10),
        expires_on=date(2034, 1, 10),
    )
    return [
        OverviewLine(
            grant_id=1,
            fund_name="KBC Equity Fund World",
            exercise_reference=Decimal("25.5"),
            quantity=100,
            total_sold_quantity=40,
            quantity_remaining=60,
            amount_granted=Decimal("600"),
            current_value=Decimal("20"),
            last_price_update=date(2024, 5, 1),
            current_total_value=Decimal("1200"),
            tax=Decimal("180"),
            target_total_value=Decimal("390"),
            profit_loss_vs_target=Decimal("630"),
            current_return_percentage=Decimal("170.00"),
            **common,
        ),
        OverviewLine(
            grant_id=2,
            exercise_reference=Decimal("8"),
            quantity=10,
            total_sold_quantity=0,
            quantity_remaining=10,
            amount_granted=Decimal("100"),
            tax=Decimal("30"),
            target_total_value=Decimal("65"),
            **common,
        ),
    ]


class TestMoneyFilter:
    def test_formats_thousands(self):
        assert money(Decimal("1234.5"), "€") == "€1,234.50"

    def test_unknown(self):
        assert money(None, "€") == "N/A"


class TestPortfolioSummary:
    def test_totals(self, overview_lines):
        totals = PortfolioSummaryGenerator().totals(overview_lines)
        assert totals["options"] == 70
        assert totals["amount_granted"] == Decimal("700")
        assert totals["current_value"] == Decimal("1200")
        assert totals["tax"] == Decimal("210")
        assert totals["target"] == Decimal("455")

    def test_render(self, overview_lines):
        text = PortfolioSummaryGenerator().render(overview_lines)
        assert text.startswith("PORTFOLIO SUMMARY")
        assert "Grant #1  KBC Equity Fund World" in text
        assert "Grant #2  Unknown fund" in text
        assert "€20.00 on 2024-05-01" in text
        assert "Return:         170.00%" in text
        assert "Return:         N/A" in text
        assert "Current value:  €1,200.00" in text
        assert "WAITING_PERIOD" in text

    def test_currency_symbol(self, overview_lines):
        text = PortfolioSummaryGenerator().render(overview_lines, currency_symbol="$")
        assert "$1,200.00" in text
        assert "€" not in text

    def test_empty(self):
        text = PortfolioSummaryGenerator().render([])
        assert "No open grants." in text
        assert "TOTALS" not in text


class TestEvolutionReport:
    def test_render(self):
        lines = [
            EvolutionLine(
                snapshot_date=date(2024, 6, 1),
                total_portfolio_value=Decimal("1000"),
                total_unrealized_gain=Decimal("400"),
                total_realized_gain=Decimal("0"),
                total_options_count=100,
                active_options_count=100,
                notes="• Grant received: 100 options (KBC Equity Fund World)",
            ),
            EvolutionLine(
                snapshot_date=date(2024, 6, 10),
                total_portfolio_value=Decimal("1100"),
                total_unrealized_gain=Decimal("500"),
                total_realized_gain=Decimal("0"),
                total_options_count=100,
                active_options_count=100,
                previous_value=Decimal("1000"),
                change_from_previous=Decimal("100"),
                change_percent=Decimal("10.00"),
                days_between=9,
            ),
        ]
        text = EvolutionReportGenerator().render(lines)
        assert text.startswith("PORTFOLIO EVOLUTION")
        assert "2024-06-01  €1,000.00" in text
        assert "2024-06-10  €1,100.00  (+100.00, 10.00% over 9d)" in text
        assert "  • Grant received: 100 options (KBC Equity Fund World)" in text
        assert "Active options: 100 / 100" in text

    def test_empty(self):
        assert "No snapshots recorded." in EvolutionReportGenerator().render([])
