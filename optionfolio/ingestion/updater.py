"""Bulk price update: fetch today's price for every grant that lacks one."""

import logging
from collections.abc import Callable, Generator
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date
from decimal import Decimal

from optionfolio.db.repository import PortfolioRepository
from optionfolio.ingestion.prices import PriceIngestor
from optionfolio.models.evolution import ProgressEvent
from optionfolio.models.prices import PriceRecord
from optionfolio.models.results import IngestResult

logger = logging.getLogger(__name__)

# Called with (exercise_reference, grant_date); returns None when no price is found.
PriceFetcher = Callable[[Decimal, date], PriceRecord | None]


class PriceUpdater:
    """Fans price fetches out over a thread pool and stores the results.

    Fetchers run on worker threads and never touch the database; every
    write happens on the consuming thread through ``PriceIngestor``.
    """

    def __init__(
        self,
        repo: PortfolioRepository,
        ingestor: PriceIngestor,
        fetcher: PriceFetcher,
        max_workers: int = 4,
        today: Callable[[], date] = date.today,
    ):
        self.repo = repo
        self.ingestor = ingestor
        self.fetcher = fetcher
        self.max_workers = max_workers
        self.today = today

    def iter_update(self) -> Generator[ProgressEvent, None, IngestResult]:
        """Yield fetch and store progress; returns the ingest result."""
        today = self.today()
        grants = self.repo.get_grants_needing_price(today)
        identities = list(dict.fromkeys((g.exercise_reference, g.grant_date) for g in grants))
        total = len(identities)
        records: list[PriceRecord] = []
        errors: list[str] = []

        yield ProgressEvent(
            stage="fetch", current=0, total=total, message=f"Fetching {total} prices"
        )
        if identities:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, total)) as executor:
                future_to_identity = {
                    executor.submit(self.fetcher, reference, grant_date): (reference, grant_date)
                    for reference, grant_date in identities
                }
                for done, future in enumerate(as_completed(future_to_identity), start=1):
                    reference, grant_date = future_to_identity[future]
                    label = f"{reference} granted {grant_date.isoformat()}"
                    try:
                        record = future.result()
                    except Exception as e:
                        logger.warning("Price fetch failed for %s: %s", label, e)
                        errors.append(f"{label}: {e}")
                    else:
                        if record is None:
                            errors.append(f"{label}: no price returned")
                        else:
                            records.append(record)
                    yield ProgressEvent(stage="fetch", current=done, total=total, message=label)

        yield ProgressEvent(
            stage="store", current=0, total=len(records), message=f"Storing {len(records)} prices"
        )
        result = self.ingestor.ingest(records, ingestion_date=today)
        result.errors.extend(errors)
        yield ProgressEvent(
            stage="store", current=len(records), total=len(records), message="Done"
        )
        return result

    def run(self) -> IngestResult:
        """Run ``iter_update`` to completion and return its result."""
        progress = self.iter_update()
        while True:
            try:
                next(progress)
            except StopIteration as stop:
                return stop.value
