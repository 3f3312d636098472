"""Read-side portfolio views: overview, histories, evolution and events."""

import logging
from collections import defaultdict
from collections.abc import Callable
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from optionfolio.db.repository import PortfolioRepository
from optionfolio.engines.evolution import grant_received_note, sale_note
from optionfolio.engines.prices import PriceResolver
from optionfolio.exceptions import PriceUnavailableError
from optionfolio.models.enums import EventType, GrantStatus, SellingStatus
from optionfolio.models.grant import Grant
from optionfolio.models.views import (
    EvolutionLine,
    GrantHistoryLine,
    OverviewLine,
    PortfolioEvent,
    SalesHistoryLine,
)

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")

# Options become sellable one year after grant and lapse after ten.
SELLABLE_AFTER_YEARS = 1
EXPIRING_SOON_AFTER_YEARS = 9
EXPIRES_AFTER_YEARS = 10


def add_years(d: date, years: int) -> date:
    """Shift a date by whole years, moving Feb 29 to Feb 28 when needed."""
    try:
        return d.replace(year=d.year + years)
    except ValueError:
        return d.replace(year=d.year + years, day=28)


def selling_status(grant_date: date, today: date) -> tuple[SellingStatus, date, date]:
    """Returns (status, can_sell_after, expires_on) for a grant."""
    can_sell_after = add_years(grant_date, SELLABLE_AFTER_YEARS)
    expires_on = add_years(grant_date, EXPIRES_AFTER_YEARS)
    if today < can_sell_after:
        status = SellingStatus.WAITING_PERIOD
    elif today >= expires_on:
        status = SellingStatus.EXPIRED
    elif today >= add_years(grant_date, EXPIRING_SOON_AFTER_YEARS):
        status = SellingStatus.EXPIRING_SOON
    else:
        status = SellingStatus.SELLABLE
    return status, can_sell_after, expires_on


def normalized_position(value: Decimal | None, series: list[Decimal]) -> Decimal | None:
    """Where ``value`` sits between the series low (0) and high (100), one decimal."""
    if value is None or not series:
        return None
    low, high = min(series), max(series)
    if high == low:
        return None
    return ((value - low) / (high - low) * HUNDRED).quantize(
        Decimal("0.1"), rounding=ROUND_HALF_UP
    )


def grant_status(grant: Grant) -> GrantStatus:
    if grant.total_sold_quantity == 0:
        return GrantStatus.ACTIVE
    if grant.quantity_remaining == 0:
        return GrantStatus.FULLY_SOLD
    return GrantStatus.PARTIALLY_SOLD


class PortfolioViews:
    """Joins grants, sales and prices into the listings shown to the user.

    Prices are re-read from the price store on every call; a missing price
    degrades to the grant's cached value or None.
    """

    def __init__(
        self,
        repo: PortfolioRepository,
        resolver: PriceResolver,
        today: Callable[[], date] = date.today,
    ):
        self.repo = repo
        self.resolver = resolver
        self.today = today

    def _current_price(self, grant: Grant) -> tuple[Decimal | None, date | None]:
        try:
            latest = self.resolver.latest(grant.exercise_reference, grant.grant_date)
        except PriceUnavailableError as exc:
            logger.debug("%s; using cached value", exc)
            if grant.current_value > 0:
                return grant.current_value, None
            return None, None
        return latest.value, latest.price_date

    def overview(self) -> list[OverviewLine]:
        """One line per grant with unsold options."""
        unit_cost = self.repo.get_setting_decimal("unit_cost")
        target_pct = self.repo.get_setting_decimal("target_percentage")
        today = self.today()
        lines = []
        for grant in self.repo.list_grants():
            if grant.quantity_remaining <= 0:
                continue
            remaining = Decimal(grant.quantity_remaining)
            amount = remaining * unit_cost
            tax = grant.authoritative_tax
            target_total = amount * target_pct / HUNDRED
            price, price_date = self._current_price(grant)

            current_total = profit_loss = return_pct = None
            if price is not None:
                current_total = remaining * price
                net = current_total - tax
                profit_loss = net - target_total
                if amount > 0:
                    return_pct = (net / amount * HUNDRED).quantize(
                        Decimal("0.01"), rounding=ROUND_HALF_UP
                    )

            series = [
                obs.value
                for obs in self.resolver.history(grant.exercise_reference, grant.grant_date)
            ]
            status, can_sell_after, expires_on = selling_status(grant.grant_date, today)
            lines.append(
                OverviewLine(
                    grant_id=grant.id,
                    grant_date=grant.grant_date,
                    fund_name=grant.fund_name,
                    exercise_reference=grant.exercise_reference,
                    quantity=grant.quantity,
                    total_sold_quantity=grant.total_sold_quantity,
                    quantity_remaining=grant.quantity_remaining,
                    amount_granted=amount,
                    current_value=price,
                    last_price_update=price_date,
                    current_total_value=current_total,
                    tax=tax,
                    target_total_value=target_total,
                    profit_loss_vs_target=profit_loss,
                    current_return_percentage=return_pct,
                    selling_status=status,
                    can_sell_after=can_sell_after,
                    expires_on=expires_on,
                    normalized_price_percentage=normalized_position(price, series),
                )
            )
        return lines

    def sales_history(self) -> list[SalesHistoryLine]:
        """All sales, most recent first."""
        unit_cost = self.repo.get_setting_decimal("unit_cost")
        target_pct = self.repo.get_setting_decimal("target_percentage")
        grants = {grant.id: grant for grant in self.repo.list_grants()}
        lines = []
        for sale in reversed(self.repo.list_sales()):
            grant = grants[sale.grant_id]
            target = Decimal(sale.quantity_sold) * unit_cost * target_pct / HUNDRED
            lines.append(
                SalesHistoryLine(
                    sale_id=sale.id,
                    grant_id=sale.grant_id,
                    sale_date=sale.sale_date,
                    quantity_sold=sale.quantity_sold,
                    sale_price=sale.sale_price,
                    total_sale_value=sale.total_sale_value,
                    tax_deducted=sale.tax_deducted,
                    realized_gain_loss=sale.realized_gain_loss,
                    notes=sale.notes,
                    grant_date=grant.grant_date,
                    fund_name=grant.fund_name,
                    exercise_reference=grant.exercise_reference,
                    profit_loss_vs_target=(sale.total_sale_value - sale.tax_deducted) - target,
                )
            )
        return lines

    def grant_history(self) -> list[GrantHistoryLine]:
        """Every grant, sold out or not, newest grant date first."""
        sales_by_grant = defaultdict(list)
        for sale in self.repo.list_sales():
            sales_by_grant[sale.grant_id].append(sale)
        lines = []
        for grant in reversed(self.repo.list_grants()):
            sales = sales_by_grant[grant.id]
            lines.append(
                GrantHistoryLine(
                    grant_id=grant.id,
                    grant_date=grant.grant_date,
                    fund_name=grant.fund_name,
                    exercise_reference=grant.exercise_reference,
                    quantity=grant.quantity,
                    total_sold_quantity=grant.total_sold_quantity,
                    quantity_remaining=grant.quantity_remaining,
                    amount_granted=grant.amount_granted,
                    tax=grant.authoritative_tax,
                    sale_count=len(sales),
                    total_sale_value=sum((s.total_sale_value for s in sales), Decimal("0")),
                    total_realized_gain=sum((s.realized_gain_loss for s in sales), Decimal("0")),
                    status=grant_status(grant),
                )
            )
        return lines

    def evolution(self, days: int | None = None) -> list[EvolutionLine]:
        """Snapshots oldest first with the change from the previous row in the window."""
        since = self.today() - timedelta(days=days) if days else None
        lines = []
        previous = None
        for snapshot in self.repo.list_snapshots(since=since):
            line = EvolutionLine(
                snapshot_date=snapshot.snapshot_date,
                total_portfolio_value=snapshot.total_portfolio_value,
                total_unrealized_gain=snapshot.total_unrealized_gain,
                total_realized_gain=snapshot.total_realized_gain,
                total_options_count=snapshot.total_options_count,
                active_options_count=snapshot.active_options_count,
                notes=snapshot.notes,
            )
            if previous is not None:
                change = snapshot.total_portfolio_value - previous.total_portfolio_value
                line.previous_value = previous.total_portfolio_value
                line.change_from_previous = change
                line.days_between = (snapshot.snapshot_date - previous.snapshot_date).days
                if previous.total_portfolio_value != 0:
                    line.change_percent = (
                        change / previous.total_portfolio_value * HUNDRED
                    ).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            lines.append(line)
            previous = snapshot
        return lines

    def events(self) -> list[PortfolioEvent]:
        """Grant and sale events in date order."""
        symbol = self.repo.get_setting("currency_symbol") or ""
        grants = self.repo.list_grants()
        fund_names = {grant.id: grant.fund_name for grant in grants}
        events = [
            PortfolioEvent(
                event_date=grant.grant_date,
                event_type=EventType.GRANT,
                grant_id=grant.id,
                quantity=grant.quantity,
                fund_name=grant.fund_name,
                description=grant_received_note(grant),
            )
            for grant in grants
        ]
        for sale in self.repo.list_sales():
            events.append(
                PortfolioEvent(
                    event_date=sale.sale_date,
                    event_type=EventType.SALE,
                    grant_id=sale.grant_id,
                    sale_id=sale.id,
                    quantity=sale.quantity_sold,
                    price=sale.sale_price,
                    fund_name=fund_names.get(sale.grant_id),
                    description=sale_note(sale.quantity_sold, sale.sale_price, symbol),
                )
            )
        events.sort(key=lambda event: (event.event_date, event.event_type != EventType.GRANT))
        return events
