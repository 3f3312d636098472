"""Evolution timeline report generator."""

from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from optionfolio.models.views import EvolutionLine
from optionfolio.reports.portfolio_summary import money

TEMPLATE_DIR = Path(__file__).parent / "templates"


class EvolutionReportGenerator:
    """Generates a text timeline of portfolio value."""

    def __init__(self) -> None:
        self.env = Environment(loader=FileSystemLoader(str(TEMPLATE_DIR)))
        self.env.filters["money"] = money

    def render(self, lines: list[EvolutionLine], currency_symbol: str = "€") -> str:
        template = self.env.get_template("evolution_report.txt")
        return template.render(lines=lines, symbol=currency_symbol)
