"""Portfolio summary report generator."""

from decimal import Decimal
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from optionfolio.models.views import OverviewLine

TEMPLATE_DIR = Path(__file__).parent / "templates"


def money(value: Decimal | None, symbol: str = "") -> str:
    """Format an amount with two decimals, or N/A when unknown."""
    if value is None:
        return "N/A"
    return f"{symbol}{value:,.2f}"


class PortfolioSummaryGenerator:
    """Generates a text summary of the open grants."""

    def __init__(self) -> None:
        self.env = Environment(loader=FileSystemLoader(str(TEMPLATE_DIR)))
        self.env.filters["money"] = money

    def totals(self, lines: list[OverviewLine]) -> dict[str, Decimal | int]:
        """Sum the overview columns shown in the footer."""
        return {
            "options": sum(line.quantity_remaining for line in lines),
            "amount_granted": sum((line.amount_granted for line in lines), Decimal("0")),
            "current_value": sum(
                (line.current_total_value or Decimal("0") for line in lines), Decimal("0")
            ),
            "tax": sum((line.tax for line in lines), Decimal("0")),
            "target": sum((line.target_total_value for line in lines), Decimal("0")),
        }

    def render(self, lines: list[OverviewLine], currency_symbol: str = "€") -> str:
        """Render the portfolio summary using the Jinja2 template."""
        template = self.env.get_template("portfolio_summary.txt")
        return template.render(lines=lines, totals=self.totals(lines), symbol=currency_symbol)
