"""Price resolution against the stored price observations."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from optionfolio.db.repository import PortfolioRepository
from optionfolio.exceptions import PriceUnavailableError
from optionfolio.models.enums import MatchType, PriceSource
from optionfolio.models.prices import PriceObservation, ResolvedPrice

logger = logging.getLogger(__name__)

DERIVED_PRICE_STEP = Decimal("10")


def round_to_step(value: Decimal, step: Decimal = DERIVED_PRICE_STEP) -> Decimal:
    """Round to the nearest multiple of ``step``; halves round up."""
    return (value / step).quantize(Decimal("1"), rounding=ROUND_HALF_UP) * step


@dataclass
class OptionsListCache:
    """The list of known option identities with their latest prices.

    Owned by a ``PriceResolver``; reloaded from ``loader`` once ``ttl`` has
    passed since the last fetch.
    """

    loader: Callable[[], list[PriceObservation]]
    ttl: timedelta = timedelta(hours=24)
    clock: Callable[[], datetime] = datetime.now
    data: list[PriceObservation] | None = None
    fetched_at: datetime | None = None

    def is_expired(self) -> bool:
        if self.data is None or self.fetched_at is None:
            return True
        return self.clock() - self.fetched_at >= self.ttl

    def refresh(self) -> list[PriceObservation]:
        self.data = self.loader()
        self.fetched_at = self.clock()
        return self.data

    def get(self) -> list[PriceObservation]:
        if self.is_expired():
            return self.refresh()
        return self.data

    def invalidate(self) -> None:
        self.data = None
        self.fetched_at = None


class PriceResolver:
    """Finds the best available price for an option identity on a date."""

    def __init__(
        self,
        repo: PortfolioRepository,
        options_cache: OptionsListCache | None = None,
    ):
        self.repo = repo
        self.options_cache = options_cache or OptionsListCache(loader=repo.list_latest_prices)

    def resolve(
        self, exercise_reference: Decimal, grant_date: date, target_date: date
    ) -> ResolvedPrice:
        """Resolve a price for ``target_date``.

        Order: an exact observation; for the grant date itself, a price
        derived from the first later observation; otherwise the nearest
        observation (ties go to the earlier date). Returns an unavailable
        result rather than raising when nothing qualifies.
        """
        exact = self.repo.get_price_on(exercise_reference, grant_date, target_date)
        if exact is not None:
            return ResolvedPrice(
                price=exact.value, match_type=MatchType.EXACT, source_date=exact.price_date
            )

        if target_date == grant_date:
            return self._derive(exercise_reference, grant_date)

        before = self.repo.get_price_before(exercise_reference, grant_date, target_date)
        after = self.repo.get_price_after(exercise_reference, grant_date, target_date)
        if before is None and after is None:
            return ResolvedPrice(match_type=MatchType.UNAVAILABLE)
        if after is None or (
            before is not None
            and (target_date - before.price_date) <= (after.price_date - target_date)
        ):
            return ResolvedPrice(
                price=before.value,
                match_type=MatchType.NEAREST_BEFORE,
                source_date=before.price_date,
            )
        return ResolvedPrice(
            price=after.value,
            match_type=MatchType.NEAREST_AFTER,
            source_date=after.price_date,
        )

    def _derive(self, exercise_reference: Decimal, grant_date: date) -> ResolvedPrice:
        later = self.repo.get_price_after(exercise_reference, grant_date, grant_date)
        if later is None:
            logger.debug("No price after %s for %s", grant_date, exercise_reference)
            return ResolvedPrice(match_type=MatchType.UNAVAILABLE)

        derived = round_to_step(later.value)
        if derived <= 0:
            # Too small to round onto the grid; use the observation as-is.
            return ResolvedPrice(
                price=later.value,
                match_type=MatchType.NEAREST_AFTER,
                source_date=later.price_date,
            )

        with self.repo.transaction():
            self.repo.insert_price(
                PriceObservation(
                    fund_name=later.fund_name,
                    exercise_reference=exercise_reference,
                    grant_date=grant_date,
                    price_date=grant_date,
                    value=derived,
                    source=PriceSource.DERIVED,
                )
            )
        self.options_cache.invalidate()
        logger.info(
            "Derived grant-date price %s for %s on %s from %s on %s",
            derived, exercise_reference, grant_date, later.value, later.price_date,
        )
        return ResolvedPrice(price=derived, match_type=MatchType.DERIVED, source_date=grant_date)

    def latest(self, exercise_reference: Decimal, grant_date: date) -> PriceObservation:
        """Latest observation for an identity. Raises PriceUnavailableError if none."""
        observation = self.repo.get_latest_price(exercise_reference, grant_date)
        if observation is None:
            raise PriceUnavailableError(exercise_reference, grant_date)
        return observation

    def history(self, exercise_reference: Decimal, grant_date: date) -> list[PriceObservation]:
        return self.repo.get_price_series(exercise_reference, grant_date)

    def available_options(self) -> list[PriceObservation]:
        """Known option identities with their latest price, cached for the TTL."""
        return self.options_cache.get()
