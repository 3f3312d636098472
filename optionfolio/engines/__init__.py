"""Ledger, tax, pricing and valuation engines."""

from optionfolio.engines.evolution import EvolutionBuilder
from optionfolio.engines.ledger import GrantLedger
from optionfolio.engines.prices import OptionsListCache, PriceResolver
from optionfolio.engines.sales import SaleProcessor
from optionfolio.engines.tax import TaxAllocator
from optionfolio.engines.valuation import PortfolioViews

__all__ = [
    "EvolutionBuilder",
    "GrantLedger",
    "OptionsListCache",
    "PortfolioViews",
    "PriceResolver",
    "SaleProcessor",
    "TaxAllocator",
]
