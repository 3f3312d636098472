"""Data models for optionfolio."""

from optionfolio.models.enums import (
    EventType,
    GrantStatus,
    MatchType,
    PriceSource,
    SellingStatus,
    TaxMergePolicy,
)
from optionfolio.models.evolution import EvolutionSnapshot, PortfolioTotals, ProgressEvent
from optionfolio.models.grant import Grant, SaleTransaction, canonical_reference
from optionfolio.models.prices import PriceObservation, PriceRecord, ResolvedPrice
from optionfolio.models.results import (
    EditOutcome,
    IngestResult,
    MergeResult,
    RebuildResult,
    SaleOutcome,
)
from optionfolio.models.views import (
    EvolutionLine,
    GrantHistoryLine,
    OverviewLine,
    PortfolioEvent,
    SalesHistoryLine,
)

__all__ = [
    "canonical_reference",
    "EditOutcome",
    "EventType",
    "EvolutionLine",
    "EvolutionSnapshot",
    "Grant",
    "GrantHistoryLine",
    "GrantStatus",
    "IngestResult",
    "MatchType",
    "MergeResult",
    "OverviewLine",
    "PortfolioEvent",
    "PortfolioTotals",
    "PriceObservation",
    "PriceRecord",
    "PriceSource",
    "ProgressEvent",
    "RebuildResult",
    "ResolvedPrice",
    "SaleOutcome",
    "SaleTransaction",
    "SalesHistoryLine",
    "SellingStatus",
    "TaxMergePolicy",
]
