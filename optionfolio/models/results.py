"""Result models returned by mutating portfolio operations."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from optionfolio.models.enums import TaxMergePolicy
from optionfolio.models.grant import Grant, SaleTransaction


class MergeResult(BaseModel):
    grant: Grant
    previous_quantity: int
    added_quantity: int
    tax_policy: TaxMergePolicy

    @property
    def new_quantity(self) -> int:
        return self.grant.quantity

    @property
    def new_amount_granted(self) -> Decimal:
        return self.grant.amount_granted

    @property
    def new_tax(self) -> Decimal:
        return self.grant.authoritative_tax


class SaleOutcome(BaseModel):
    sale_id: int
    grant_id: int
    tax_allocated: Decimal
    realized_gain_loss: Decimal
    total_sale_value: Decimal
    remaining_tax: Decimal
    quantity_remaining: int


class EditOutcome(BaseModel):
    sale: SaleTransaction
    previous_sale_date: date
    previous_sale_price: Decimal

    @property
    def total_sale_value(self) -> Decimal:
        return self.sale.total_sale_value

    @property
    def realized_gain_loss(self) -> Decimal:
        return self.sale.realized_gain_loss


class IngestResult(BaseModel):
    """Counts from storing a batch of price records."""

    ingestion_date: date
    inserted: int = 0
    skipped: int = 0  # already stored for that key
    rejected: int = 0  # non-positive values
    errors: list[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return self.inserted + self.skipped + self.rejected


class RebuildResult(BaseModel):
    from_date: date | None = None
    to_date: date
    days_processed: int = 0
    snapshots_written: int = 0
    event_days: int = 0
