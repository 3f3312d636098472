"""Storing price records as observations."""

import logging
from collections.abc import Callable, Iterable
from datetime import date
from decimal import Decimal

from optionfolio.db.repository import PortfolioRepository
from optionfolio.engines.evolution import EvolutionBuilder
from optionfolio.engines.prices import PriceResolver
from optionfolio.models.enums import PriceSource
from optionfolio.models.prices import PriceObservation, PriceRecord
from optionfolio.models.results import IngestResult

logger = logging.getLogger(__name__)


class PriceIngestor:
    """Writes price batches to the store. Existing observations are never replaced."""

    def __init__(
        self,
        repo: PortfolioRepository,
        evolution: EvolutionBuilder,
        resolver: PriceResolver,
        today: Callable[[], date] = date.today,
    ):
        self.repo = repo
        self.evolution = evolution
        self.resolver = resolver
        self.today = today

    def _store(
        self, records: Iterable[PriceRecord], source: PriceSource, result: IngestResult
    ) -> None:
        for record in records:
            if record.value <= 0:
                result.rejected += 1
                result.errors.append(
                    f"{record.exercise_reference} {record.grant_date} on "
                    f"{record.price_date}: non-positive value {record.value}"
                )
                continue
            stored = self.repo.insert_price(
                PriceObservation(
                    fund_name=record.fund_name,
                    exercise_reference=record.exercise_reference,
                    grant_date=record.grant_date,
                    price_date=record.price_date,
                    value=record.value,
                    source=source,
                )
            )
            if stored:
                result.inserted += 1
            else:
                result.skipped += 1

    def ingest(
        self,
        records: Iterable[PriceRecord],
        ingestion_date: date | None = None,
        source: PriceSource = PriceSource.FEED,
    ) -> IngestResult:
        """Store a batch and update the snapshot for the ingestion date once."""
        ingestion_date = ingestion_date or self.today()
        result = IngestResult(ingestion_date=ingestion_date)
        with self.repo.transaction():
            self._store(records, source, result)
            self.evolution.upsert(
                ingestion_date, f"Prices updated: {result.inserted} new observations"
            )
        self.resolver.options_cache.invalidate()
        logger.info(
            "Ingested prices for %s: %d new, %d already stored, %d rejected",
            ingestion_date, result.inserted, result.skipped, result.rejected,
        )
        return result

    def store_history(
        self,
        exercise_reference: Decimal,
        grant_date: date,
        fund_name: str | None,
        history: Iterable[tuple[date, Decimal]],
    ) -> IngestResult:
        """Backfill a price series for one option identity.

        Points with a non-positive value are dropped. No snapshot is written;
        rebuild the timeline afterwards to value the new history.
        """
        records = [
            PriceRecord(
                fund_name=fund_name,
                exercise_reference=exercise_reference,
                grant_date=grant_date,
                price_date=price_date,
                value=value,
            )
            for price_date, value in history
        ]
        result = IngestResult(ingestion_date=self.today())
        with self.repo.transaction():
            self._store(records, PriceSource.HISTORY, result)
        self.resolver.options_cache.invalidate()
        logger.info(
            "Stored %d historical prices for %s granted %s (%d already known)",
            result.inserted, exercise_reference, grant_date, result.skipped,
        )
        return result
