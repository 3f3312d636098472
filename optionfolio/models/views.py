"""Read-side view models for the portfolio listings."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel

from optionfolio.models.enums import EventType, GrantStatus, SellingStatus


class OverviewLine(BaseModel):
    grant_id: int
    grant_date: date
    fund_name: str | None = None
    exercise_reference: Decimal
    quantity: int
    total_sold_quantity: int
    quantity_remaining: int
    amount_granted: Decimal  # cost of the remaining options
    current_value: Decimal | None = None
    last_price_update: date | None = None
    current_total_value: Decimal | None = None
    tax: Decimal
    target_total_value: Decimal
    profit_loss_vs_target: Decimal | None = None
    current_return_percentage: Decimal | None = None
    selling_status: SellingStatus
    can_sell_after: date
    expires_on: date
    normalized_price_percentage: Decimal | None = None


class SalesHistoryLine(BaseModel):
    sale_id: int
    grant_id: int
    sale_date: date
    quantity_sold: int
    sale_price: Decimal
    total_sale_value: Decimal
    tax_deducted: Decimal
    realized_gain_loss: Decimal
    notes: str | None = None
    grant_date: date
    fund_name: str | None = None
    exercise_reference: Decimal
    profit_loss_vs_target: Decimal


class GrantHistoryLine(BaseModel):
    grant_id: int
    grant_date: date
    fund_name: str | None = None
    exercise_reference: Decimal
    quantity: int
    total_sold_quantity: int
    quantity_remaining: int
    amount_granted: Decimal
    tax: Decimal
    sale_count: int
    total_sale_value: Decimal
    total_realized_gain: Decimal
    status: GrantStatus


class EvolutionLine(BaseModel):
    snapshot_date: date
    total_portfolio_value: Decimal
    total_unrealized_gain: Decimal
    total_realized_gain: Decimal
    total_options_count: int
    active_options_count: int
    notes: str | None = None
    previous_value: Decimal | None = None
    change_from_previous: Decimal | None = None
    change_percent: Decimal | None = None
    days_between: int | None = None


class PortfolioEvent(BaseModel):
    event_date: date
    event_type: EventType
    grant_id: int
    sale_id: int | None = None
    quantity: int
    price: Decimal | None = None
    fund_name: str | None = None
    description: str
