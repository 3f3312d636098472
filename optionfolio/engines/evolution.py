"""Evolution snapshot builder: one aggregated valuation row per calendar day."""

import logging
from collections import defaultdict
from collections.abc import Callable, Generator
from datetime import date, timedelta
from decimal import Decimal

from optionfolio.db.repository import PortfolioRepository
from optionfolio.models.evolution import (
    NOTE_BULLET,
    EvolutionSnapshot,
    PortfolioTotals,
    ProgressEvent,
)
from optionfolio.models.grant import Grant
from optionfolio.models.results import RebuildResult

logger = logging.getLogger(__name__)

VALUE_CHANGE_THRESHOLD = Decimal("0.01")


def format_money(value: Decimal, symbol: str) -> str:
    return f"{symbol}{value:,.2f}"


def sale_note(quantity: int, price: Decimal, symbol: str) -> str:
    return f"Sale: {quantity} options at {format_money(price, symbol)}"


def grant_received_note(grant: Grant) -> str:
    return f"Grant received: {grant.quantity} options ({grant.fund_name or 'unknown fund'})"


def merge_notes(existing: str | None, notes: list[str]) -> str | None:
    """Append bullets to a notes block, skipping any already present verbatim."""
    lines = [line for line in (existing or "").split("\n") if line]
    for note in notes:
        bullet = f"{NOTE_BULLET}{note}"
        if bullet not in lines:
            lines.append(bullet)
    return "\n".join(lines) if lines else None


class EvolutionBuilder:
    """Maintains the per-day evolution snapshots.

    Every mutating operation calls ``upsert`` for its effective date. Totals
    always come from ``calculate_totals`` so every caller stores the same
    figures for the same state.
    """

    def __init__(
        self,
        repo: PortfolioRepository,
        today: Callable[[], date] = date.today,
    ):
        self.repo = repo
        self.today = today

    def calculate_totals(self, as_of: date | None = None) -> PortfolioTotals:
        """Aggregate portfolio totals now, or as they stood at the end of ``as_of``.

        Without ``as_of`` the current quantities and latest prices are used.
        With it, only grants granted and sales made by that date count, and
        each grant is valued at its latest price on or before the date.
        """
        unit_cost = self.repo.get_setting_decimal("unit_cost")
        grants = self.repo.list_grants(granted_on_or_before=as_of)
        sales = self.repo.list_sales(sold_on_or_before=as_of)

        sold_by_grant: dict[int, int] = defaultdict(int)
        realized = Decimal("0")
        for sale in sales:
            sold_by_grant[sale.grant_id] += sale.quantity_sold
            realized += sale.realized_gain_loss

        total_value = Decimal("0")
        unrealized = Decimal("0")
        total_options = 0
        active_options = 0
        for grant in grants:
            sold = grant.total_sold_quantity if as_of is None else sold_by_grant[grant.id]
            remaining = max(grant.quantity - sold, 0)
            total_options += grant.quantity
            active_options += remaining
            if remaining == 0:
                continue
            price = self._price_for(grant, as_of)
            if price is None:
                continue
            value = Decimal(remaining) * price
            total_value += value
            unrealized += value - Decimal(remaining) * unit_cost

        return PortfolioTotals(
            total_portfolio_value=total_value,
            total_unrealized_gain=unrealized,
            total_realized_gain=realized,
            total_options_count=total_options,
            active_options_count=active_options,
        )

    def _price_for(self, grant: Grant, as_of: date | None) -> Decimal | None:
        observation = self.repo.get_latest_price(
            grant.exercise_reference, grant.grant_date, on_or_before=as_of
        )
        if observation is not None:
            return observation.value
        if grant.current_value > 0:
            return grant.current_value
        return None

    def upsert(self, snapshot_date: date, note: str) -> EvolutionSnapshot:
        """Record current totals for a date and append ``note`` to its bullets."""
        with self.repo.transaction():
            totals = self.calculate_totals()
            snapshot = self._write(snapshot_date, totals, [note])
        logger.debug("Snapshot %s: %s", snapshot_date, note)
        return snapshot

    def _write(
        self, snapshot_date: date, totals: PortfolioTotals, notes: list[str]
    ) -> EvolutionSnapshot:
        existing = self.repo.get_snapshot(snapshot_date)
        snapshot = EvolutionSnapshot(
            snapshot_date=snapshot_date,
            notes=merge_notes(existing.notes if existing else None, notes),
            **totals.model_dump(),
        )
        if existing is None:
            snapshot.id = self.repo.insert_snapshot(snapshot)
        else:
            snapshot.id = existing.id
            self.repo.update_snapshot(snapshot)
        return snapshot

    def _event_notes(self) -> dict[date, list[str]]:
        """Annotations for each day a grant was received or options were sold."""
        symbol = self.repo.get_setting("currency_symbol") or ""
        events: dict[date, list[str]] = defaultdict(list)
        for grant in self.repo.list_grants():
            events[grant.grant_date].append(grant_received_note(grant))
        for sale in self.repo.list_sales():
            events[sale.sale_date].append(
                sale_note(sale.quantity_sold, sale.sale_price, symbol)
            )
        return events

    def iter_rebuild(
        self, from_date: date | None = None
    ) -> Generator[ProgressEvent, None, RebuildResult]:
        """Recompute daily snapshots from ``from_date`` (default: first grant) to today.

        A day is written when its value moved by more than a cent since the
        last written day, when a grant or sale happened on it, or when it
        already has a snapshot. Existing snapshots keep their notes; nothing
        is deleted. Yields progress about every tenth of the range while the
        days are computed. The writes are applied afterwards in a single
        transaction, so no lock is held while the caller is paused.
        """
        today = self.today()
        grants = self.repo.list_grants()
        if not grants and from_date is None:
            return RebuildResult(from_date=None, to_date=today)

        start = from_date or grants[0].grant_date
        total_days = (today - start).days + 1
        if total_days <= 0:
            return RebuildResult(from_date=start, to_date=today)

        events = self._event_notes()
        snapshots = self.repo.list_snapshots()
        previous = [s for s in snapshots if s.snapshot_date < start]
        existing_days = {s.snapshot_date for s in snapshots if s.snapshot_date >= start}
        last_value = previous[-1].total_portfolio_value if previous else Decimal("0")
        report_every = max(1, total_days // 10)
        pending: list[tuple[date, PortfolioTotals, list[str]]] = []
        event_days = 0

        logger.info("Rebuilding evolution timeline from %s (%d days)", start, total_days)
        yield ProgressEvent(
            stage="rebuild", current=0, total=total_days, message=f"Starting at {start}"
        )
        for offset in range(total_days):
            day = start + timedelta(days=offset)
            totals = self.calculate_totals(as_of=day)
            notes = events.get(day, [])
            if notes:
                event_days += 1
            moved = abs(totals.total_portfolio_value - last_value) > VALUE_CHANGE_THRESHOLD
            if notes or moved or day in existing_days:
                pending.append((day, totals, notes))
                last_value = totals.total_portfolio_value
            done = offset + 1
            if done % report_every == 0 or done == total_days:
                yield ProgressEvent(
                    stage="rebuild",
                    current=done,
                    total=total_days,
                    message=f"Processed {day.isoformat()}",
                )

        with self.repo.transaction():
            for day, totals, notes in pending:
                self._write(day, totals, notes)

        logger.info("Rebuild wrote %d snapshots over %d days", len(pending), total_days)
        return RebuildResult(
            from_date=start,
            to_date=today,
            days_processed=total_days,
            snapshots_written=len(pending),
            event_days=event_days,
        )

    def rebuild(self, from_date: date | None = None) -> RebuildResult:
        """Run ``iter_rebuild`` to completion and return its summary."""
        progress = self.iter_rebuild(from_date)
        while True:
            try:
                next(progress)
            except StopIteration as stop:
                return stop.value
