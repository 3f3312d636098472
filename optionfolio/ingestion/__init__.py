"""Price ingestion: files, fetchers and history backfill."""

from optionfolio.ingestion.base import BasePriceAdapter
from optionfolio.ingestion.kbc import KBCPriceListAdapter
from optionfolio.ingestion.prices import PriceIngestor
from optionfolio.ingestion.updater import PriceFetcher, PriceUpdater

__all__ = [
    "BasePriceAdapter",
    "KBCPriceListAdapter",
    "PriceFetcher",
    "PriceIngestor",
    "PriceUpdater",
]
