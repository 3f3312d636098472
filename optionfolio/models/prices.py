"""Price observation and resolution models."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from optionfolio.models.enums import MatchType, PriceSource
from optionfolio.models.grant import canonical_reference


class PriceRecord(BaseModel):
    """One price as delivered by a fetcher or a price file, before storage."""

    fund_name: str | None = None
    exercise_reference: Decimal
    grant_date: date
    price_date: date
    value: Decimal

    @field_validator("exercise_reference")
    @classmethod
    def _normalize_reference(cls, value: Decimal) -> Decimal:
        return canonical_reference(value)


class PriceObservation(BaseModel):
    id: int | None = None
    fund_name: str | None = None
    exercise_reference: Decimal
    grant_date: date
    price_date: date
    value: Decimal = Field(gt=0)
    source: PriceSource = PriceSource.FEED
    scraped_at: datetime | None = None

    @field_validator("exercise_reference")
    @classmethod
    def _normalize_reference(cls, value: Decimal) -> Decimal:
        return canonical_reference(value)


class ResolvedPrice(BaseModel):
    price: Decimal | None = None
    match_type: MatchType
    source_date: date | None = None

    @property
    def is_available(self) -> bool:
        return self.match_type != MatchType.UNAVAILABLE
