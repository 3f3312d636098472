"""Text report generators."""

from optionfolio.reports.evolution_report import EvolutionReportGenerator
from optionfolio.reports.portfolio_summary import PortfolioSummaryGenerator

__all__ = ["EvolutionReportGenerator", "PortfolioSummaryGenerator"]
