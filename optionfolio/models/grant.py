"""Grant and sale transaction models."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator


def canonical_reference(value: Decimal) -> Decimal:
    """Normalize an exercise reference so 10, 10.0 and 10.00 share one key."""
    return Decimal(format(Decimal(value).normalize(), "f"))


class Grant(BaseModel):
    id: int | None = None
    grant_date: date
    fund_name: str | None = None
    exercise_reference: Decimal
    quantity: int = Field(ge=0)
    amount_granted: Decimal
    current_value: Decimal = Decimal("0")
    tax_amount: Decimal | None = None  # manual override
    tax_auto_calculated: Decimal = Decimal("0")
    total_sold_quantity: int = Field(default=0, ge=0)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("exercise_reference")
    @classmethod
    def _normalize_reference(cls, value: Decimal) -> Decimal:
        return canonical_reference(value)

    @model_validator(mode="after")
    def _sold_within_quantity(self) -> "Grant":
        if self.total_sold_quantity > self.quantity:
            raise ValueError(
                f"total_sold_quantity ({self.total_sold_quantity}) exceeds "
                f"quantity ({self.quantity})"
            )
        return self

    @property
    def quantity_remaining(self) -> int:
        return self.quantity - self.total_sold_quantity

    @property
    def has_manual_tax(self) -> bool:
        return self.tax_amount is not None

    @property
    def authoritative_tax(self) -> Decimal:
        """Manual tax when set, otherwise the auto-calculated figure."""
        if self.tax_amount is not None:
            return self.tax_amount
        return self.tax_auto_calculated


class SaleTransaction(BaseModel):
    id: int | None = None
    grant_id: int
    sale_date: date
    quantity_sold: int = Field(gt=0)
    sale_price: Decimal = Field(gt=0)
    total_sale_value: Decimal
    tax_deducted: Decimal = Decimal("0")  # informational only
    realized_gain_loss: Decimal
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
