"""Portfolio facade: the operations offered to the CLI and other callers."""

import logging
from collections.abc import Callable, Generator, Iterable
from datetime import date
from decimal import Decimal
from pathlib import Path

from optionfolio.db.repository import PortfolioRepository
from optionfolio.db.schema import create_schema
from optionfolio.engines.evolution import EvolutionBuilder
from optionfolio.engines.ledger import GrantLedger
from optionfolio.engines.prices import OptionsListCache, PriceResolver
from optionfolio.engines.sales import SaleProcessor
from optionfolio.engines.validation import require_date, require_decimal
from optionfolio.engines.valuation import PortfolioViews
from optionfolio.exceptions import DataValidationError
from optionfolio.ingestion.prices import PriceIngestor
from optionfolio.ingestion.updater import PriceFetcher, PriceUpdater
from optionfolio.models.enums import PriceSource
from optionfolio.models.evolution import ProgressEvent
from optionfolio.models.grant import Grant
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

logger = logging.getLogger(__name__)

NUMERIC_SETTINGS = frozenset({"tax_auto_rate", "target_percentage", "unit_cost"})


class Portfolio:
    """Wires the ledger, sale processor, resolver and snapshot builder together.

    ``today`` is injectable so callers and tests can pin the calendar date
    used for annotations and future-date checks.
    """

    def __init__(
        self,
        repo: PortfolioRepository,
        today: Callable[[], date] = date.today,
        options_cache: OptionsListCache | None = None,
    ):
        self.repo = repo
        self.today = today
        self.evolution = EvolutionBuilder(repo, today=today)
        self.resolver = PriceResolver(repo, options_cache=options_cache)
        self.ledger = GrantLedger(repo, self.evolution, today=today)
        self.sales = SaleProcessor(repo, self.evolution, today=today)
        self.views = PortfolioViews(repo, self.resolver, today=today)
        self.ingestor = PriceIngestor(repo, self.evolution, self.resolver, today=today)

    @classmethod
    def open(cls, db_path: Path, today: Callable[[], date] = date.today) -> "Portfolio":
        """Open (creating if needed) the database at ``db_path``."""
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return cls(PortfolioRepository(create_schema(db_path)), today=today)

    def close(self) -> None:
        self.repo.conn.close()

    # --- Grants ---

    def add_grant(
        self,
        grant_date: date,
        exercise_reference: Decimal,
        quantity: int,
        manual_tax: Decimal | None = None,
    ) -> int:
        return self.ledger.add(grant_date, exercise_reference, quantity, manual_tax)

    def check_existing_grant(self, grant_date: date, exercise_reference: Decimal) -> list[Grant]:
        return self.ledger.check_existing(grant_date, exercise_reference)

    def merge_grant(
        self,
        grant_id: int,
        additional_quantity: int,
        additional_manual_tax: Decimal | None = None,
    ) -> MergeResult:
        return self.ledger.merge(grant_id, additional_quantity, additional_manual_tax)

    def delete_grant(self, grant_id: int) -> Grant:
        return self.ledger.delete(grant_id)

    def set_manual_tax(self, grant_id: int, amount: Decimal | None) -> Grant:
        return self.ledger.set_manual_tax(grant_id, amount)

    def get_grant(self, grant_id: int) -> Grant | None:
        return self.repo.get_grant(grant_id)

    # --- Sales ---

    def record_sale(
        self,
        grant_id: int,
        sale_date: date,
        quantity_sold: int,
        sale_price: Decimal,
        notes: str | None = None,
    ) -> SaleOutcome:
        return self.sales.record_sale(grant_id, sale_date, quantity_sold, sale_price, notes)

    def edit_sale(
        self,
        sale_id: int,
        new_sale_date: date,
        new_sale_price: Decimal,
        new_notes: str | None = None,
    ) -> EditOutcome:
        return self.sales.edit_sale(sale_id, new_sale_date, new_sale_price, new_notes)

    # --- Views ---

    def get_portfolio_overview(self) -> list[OverviewLine]:
        return self.views.overview()

    def get_sales_history(self) -> list[SalesHistoryLine]:
        return self.views.sales_history()

    def get_grant_history(self) -> list[GrantHistoryLine]:
        return self.views.grant_history()

    def get_portfolio_evolution(self, days: int | None = None) -> list[EvolutionLine]:
        if days is not None and days <= 0:
            raise DataValidationError("days", f"must be positive, got {days}")
        return self.views.evolution(days)

    def get_portfolio_events(self) -> list[PortfolioEvent]:
        return self.views.events()

    # --- Prices ---

    def get_option_price_history(
        self, exercise_reference: Decimal, grant_date: date
    ) -> list[PriceObservation]:
        return self.resolver.history(
            require_decimal(exercise_reference, "exercise_reference"),
            require_date(grant_date, "grant_date"),
        )

    def resolve_price_for_date(
        self, target_date: date, exercise_reference: Decimal, grant_date: date
    ) -> ResolvedPrice:
        return self.resolver.resolve(
            require_decimal(exercise_reference, "exercise_reference"),
            require_date(grant_date, "grant_date"),
            require_date(target_date, "target_date"),
        )

    def get_available_options(self) -> list[PriceObservation]:
        return self.resolver.available_options()

    def ingest_prices(
        self,
        records: Iterable[PriceRecord],
        ingestion_date: date | None = None,
        source: PriceSource = PriceSource.FEED,
    ) -> IngestResult:
        return self.ingestor.ingest(records, ingestion_date, source)

    def store_historical_prices(
        self,
        exercise_reference: Decimal,
        grant_date: date,
        fund_name: str | None,
        history: Iterable[tuple[date, Decimal]],
    ) -> IngestResult:
        return self.ingestor.store_history(exercise_reference, grant_date, fund_name, history)

    def price_updater(self, fetcher: PriceFetcher, max_workers: int = 4) -> PriceUpdater:
        """A bulk updater that stores through this portfolio's ingestor."""
        return PriceUpdater(
            self.repo, self.ingestor, fetcher, max_workers=max_workers, today=self.today
        )

    # --- Evolution ---

    def rebuild_evolution_timeline(self, from_date: date | None = None) -> RebuildResult:
        return self.evolution.rebuild(from_date)

    def iter_rebuild_evolution_timeline(
        self, from_date: date | None = None
    ) -> Generator[ProgressEvent, None, RebuildResult]:
        return self.evolution.iter_rebuild(from_date)

    # --- Settings ---

    def get_settings(self) -> dict[str, str]:
        return self.repo.get_settings()

    def get_setting(self, key: str) -> str | None:
        return self.repo.get_setting(key)

    def update_setting(self, key: str, value: str) -> None:
        """Store a setting. Numeric settings must parse as non-negative numbers."""
        if key in NUMERIC_SETTINGS:
            number = require_decimal(value, key)
            if number < 0:
                raise DataValidationError(key, f"cannot be negative, got {number}")
            value = str(number)
        self.repo.set_setting(key, value)
        logger.info("Setting %s updated to %s", key, value)
