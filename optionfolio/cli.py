"""Typer CLI interface for optionfolio."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import typer

DEFAULT_DB = Path.home() / ".optionfolio" / "portfolio.db"

app = typer.Typer(
    name="optionfolio",
    help="optionfolio: grant ledger and valuation for equity options.",
)

_DB_OPTION = typer.Option(DEFAULT_DB, "--db", help="Path to the SQLite database file")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress to stderr"),
) -> None:
    """optionfolio: grant ledger and valuation for equity options."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@contextmanager
def _portfolio(db: Path) -> Iterator[Any]:
    """Open the portfolio and turn domain errors into a clean exit."""
    from optionfolio.exceptions import PortfolioError
    from optionfolio.portfolio import Portfolio

    portfolio = Portfolio.open(db)
    try:
        yield portfolio
    except PortfolioError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        portfolio.close()


def _fmt(value: Decimal | None, symbol: str = "") -> str:
    """Format an amount to 2 decimal places with commas."""
    if value is None:
        return "N/A"
    return f"{symbol}{value:,.2f}"


def _symbol(portfolio: Any) -> str:
    return portfolio.get_setting("currency_symbol") or ""


# --- Grants ---


@app.command(name="add-grant")
def add_grant(
    grant_date: str = typer.Argument(..., help="Grant date (YYYY-MM-DD)"),
    exercise_price: str = typer.Argument(..., help="Exercise price of the option"),
    quantity: int = typer.Argument(..., help="Number of options granted"),
    tax: str | None = typer.Option(None, "--tax", help="Manual tax amount for this grant"),
    merge: bool | None = typer.Option(
        None,
        "--merge/--separate",
        help="Merge into an existing open grant for the same option, or keep separate",
    ),
    db: Path = _DB_OPTION,
) -> None:
    """Record a new option grant."""
    with _portfolio(db) as portfolio:
        existing = portfolio.check_existing_grant(grant_date, exercise_price)
        if existing:
            target = existing[0]
            if merge is None:
                typer.echo(
                    f"Found {len(existing)} open grant(s) for this option; most recent is "
                    f"#{target.id} with {target.quantity_remaining} options remaining."
                )
                merge = typer.confirm(f"Merge into grant #{target.id}?", default=True)
            if merge:
                result = portfolio.merge_grant(target.id, quantity, tax)
                typer.echo(
                    f"Merged into grant #{target.id}: {result.previous_quantity} -> "
                    f"{result.new_quantity} options, tax {_fmt(result.new_tax, _symbol(portfolio))}"
                )
                typer.echo(
                    f"  Amount granted: {_fmt(result.new_amount_granted, _symbol(portfolio))}"
                )
                return

        grant_id = portfolio.add_grant(grant_date, exercise_price, quantity, tax)
        grant = portfolio.get_grant(grant_id)
        symbol = _symbol(portfolio)
        typer.echo(f"Added grant #{grant_id}: {grant.quantity} options")
        typer.echo(f"  Fund:           {grant.fund_name or 'unknown'}")
        typer.echo(f"  Amount granted: {_fmt(grant.amount_granted, symbol)}")
        typer.echo(f"  Tax:            {_fmt(grant.authoritative_tax, symbol)}")


@app.command()
def merge(
    grant_id: int = typer.Argument(..., help="Grant to merge into"),
    quantity: int = typer.Argument(..., help="Options to add"),
    tax: str | None = typer.Option(None, "--tax", help="Manual tax to add on top"),
    db: Path = _DB_OPTION,
) -> None:
    """Add options to an existing grant."""
    with _portfolio(db) as portfolio:
        result = portfolio.merge_grant(grant_id, quantity, tax)
        typer.echo(
            f"Grant #{grant_id}: {result.previous_quantity} -> {result.new_quantity} options, "
            f"tax {_fmt(result.new_tax, _symbol(portfolio))} ({result.tax_policy.value})"
        )
        typer.echo(f"  Amount granted: {_fmt(result.new_amount_granted, _symbol(portfolio))}")


@app.command(name="delete-grant")
def delete_grant(
    grant_id: int = typer.Argument(..., help="Grant to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    db: Path = _DB_OPTION,
) -> None:
    """Delete a grant together with its sales."""
    with _portfolio(db) as portfolio:
        if not yes:
            typer.confirm(f"Delete grant #{grant_id} and all its sales?", abort=True)
        grant = portfolio.delete_grant(grant_id)
        typer.echo(
            f"Deleted grant #{grant_id} ({grant.quantity_remaining} unsold options, "
            f"granted {grant.grant_date})"
        )


@app.command(name="set-tax")
def set_tax(
    grant_id: int = typer.Argument(..., help="Grant to update"),
    amount: str = typer.Argument(..., help="Manual tax amount, or 'auto' to clear it"),
    db: Path = _DB_OPTION,
) -> None:
    """Override a grant's tax, or go back to the automatic figure."""
    with _portfolio(db) as portfolio:
        value = None if amount.lower() == "auto" else amount
        grant = portfolio.set_manual_tax(grant_id, value)
        typer.echo(f"Grant #{grant_id} tax: {_fmt(grant.authoritative_tax, _symbol(portfolio))}")


# --- Sales ---


@app.command()
def sell(
    grant_id: int = typer.Argument(..., help="Grant to sell from"),
    quantity: int = typer.Argument(..., help="Options sold"),
    price: str = typer.Argument(..., help="Sale price per option"),
    sale_date: str | None = typer.Option(None, "--date", help="Sale date (default: today)"),
    notes: str | None = typer.Option(None, "--notes", help="Free-text notes"),
    db: Path = _DB_OPTION,
) -> None:
    """Record a sale of options from a grant."""
    with _portfolio(db) as portfolio:
        outcome = portfolio.record_sale(
            grant_id, sale_date or date.today(), quantity, price, notes
        )
        symbol = _symbol(portfolio)
        typer.echo(f"Recorded sale #{outcome.sale_id}:")
        typer.echo(f"  Sale value:     {_fmt(outcome.total_sale_value, symbol)}")
        typer.echo(f"  Realized gain:  {_fmt(outcome.realized_gain_loss, symbol)}")
        typer.echo(f"  Tax allocated:  {_fmt(outcome.tax_allocated, symbol)}")
        typer.echo(f"  Remaining tax:  {_fmt(outcome.remaining_tax, symbol)}")
        typer.echo(f"  Options left:   {outcome.quantity_remaining}")


@app.command(name="edit-sale")
def edit_sale(
    sale_id: int = typer.Argument(..., help="Sale to edit"),
    sale_date: str = typer.Argument(..., help="Corrected sale date (YYYY-MM-DD)"),
    price: str = typer.Argument(..., help="Corrected sale price per option"),
    notes: str | None = typer.Option(None, "--notes", help="Replacement notes"),
    db: Path = _DB_OPTION,
) -> None:
    """Correct the date, price or notes of a sale."""
    with _portfolio(db) as portfolio:
        outcome = portfolio.edit_sale(sale_id, sale_date, price, notes)
        symbol = _symbol(portfolio)
        typer.echo(
            f"Sale #{sale_id}: value {_fmt(outcome.total_sale_value, symbol)}, "
            f"realized {_fmt(outcome.realized_gain_loss, symbol)}"
        )


# --- Views ---


@app.command()
def overview(db: Path = _DB_OPTION) -> None:
    """Show open grants with current value and selling status."""
    from rich.console import Console
    from rich.table import Table

    with _portfolio(db) as portfolio:
        lines = portfolio.get_portfolio_overview()
        symbol = _symbol(portfolio)

    console = Console()
    if not lines:
        console.print("No open grants.")
        return
    tbl = Table(title="Portfolio Overview", show_header=True)
    tbl.add_column("ID", justify="right")
    tbl.add_column("Fund", style="cyan")
    tbl.add_column("Granted")
    tbl.add_column("Options", justify="right")
    tbl.add_column("Price", justify="right")
    tbl.add_column("Value", justify="right", style="green")
    tbl.add_column("Tax", justify="right")
    tbl.add_column("Return %", justify="right")
    tbl.add_column("Status")
    for line in lines:
        tbl.add_row(
            str(line.grant_id),
            line.fund_name or "unknown",
            line.grant_date.isoformat(),
            str(line.quantity_remaining),
            _fmt(line.current_value, symbol),
            _fmt(line.current_total_value, symbol),
            _fmt(line.tax, symbol),
            _fmt(line.current_return_percentage),
            line.selling_status.value,
        )
    console.print(tbl)


@app.command()
def sales(db: Path = _DB_OPTION) -> None:
    """List recorded sales, most recent first."""
    from rich.console import Console
    from rich.table import Table

    with _portfolio(db) as portfolio:
        lines = portfolio.get_sales_history()
        symbol = _symbol(portfolio)

    tbl = Table(title="Sales", show_header=True)
    tbl.add_column("ID", justify="right")
    tbl.add_column("Grant", justify="right")
    tbl.add_column("Date")
    tbl.add_column("Qty", justify="right")
    tbl.add_column("Price", justify="right")
    tbl.add_column("Value", justify="right", style="green")
    tbl.add_column("Gain", justify="right")
    tbl.add_column("vs. target", justify="right")
    for line in lines:
        tbl.add_row(
            str(line.sale_id),
            str(line.grant_id),
            line.sale_date.isoformat(),
            str(line.quantity_sold),
            _fmt(line.sale_price, symbol),
            _fmt(line.total_sale_value, symbol),
            _fmt(line.realized_gain_loss, symbol),
            _fmt(line.profit_loss_vs_target, symbol),
        )
    Console().print(tbl)


@app.command()
def grants(db: Path = _DB_OPTION) -> None:
    """List every grant with its sale status."""
    from rich.console import Console
    from rich.table import Table

    with _portfolio(db) as portfolio:
        lines = portfolio.get_grant_history()
        symbol = _symbol(portfolio)

    tbl = Table(title="Grants", show_header=True)
    tbl.add_column("ID", justify="right")
    tbl.add_column("Fund", style="cyan")
    tbl.add_column("Granted")
    tbl.add_column("Exercise", justify="right")
    tbl.add_column("Sold", justify="right")
    tbl.add_column("Left", justify="right")
    tbl.add_column("Tax", justify="right")
    tbl.add_column("Status")
    for line in lines:
        tbl.add_row(
            str(line.grant_id),
            line.fund_name or "unknown",
            line.grant_date.isoformat(),
            str(line.exercise_reference),
            str(line.total_sold_quantity),
            str(line.quantity_remaining),
            _fmt(line.tax, symbol),
            line.status.value,
        )
    Console().print(tbl)


@app.command()
def evolution(
    days: int | None = typer.Option(None, "--days", help="Only the last N days"),
    db: Path = _DB_OPTION,
) -> None:
    """Show the daily portfolio value timeline."""
    with _portfolio(db) as portfolio:
        lines = portfolio.get_portfolio_evolution(days)
        symbol = _symbol(portfolio)
    if not lines:
        typer.echo("No snapshots recorded.")
        return
    for line in lines:
        change = ""
        if line.change_from_previous is not None:
            change = f"  ({line.change_from_previous:+,.2f})"
        typer.echo(f"{line.snapshot_date}  {_fmt(line.total_portfolio_value, symbol)}{change}")
        for note in (line.notes or "").splitlines():
            typer.echo(f"    {note}")


@app.command()
def events(db: Path = _DB_OPTION) -> None:
    """List grant and sale events in date order."""
    with _portfolio(db) as portfolio:
        for event in portfolio.get_portfolio_events():
            typer.echo(f"{event.event_date}  {event.event_type.value:<5}  {event.description}")


# --- Prices ---


@app.command(name="price-history")
def price_history(
    exercise_price: str = typer.Argument(..., help="Exercise price of the option"),
    grant_date: str = typer.Argument(..., help="Grant date (YYYY-MM-DD)"),
    db: Path = _DB_OPTION,
) -> None:
    """List stored prices for one option, oldest first."""
    with _portfolio(db) as portfolio:
        series = portfolio.get_option_price_history(exercise_price, grant_date)
        symbol = _symbol(portfolio)
    if not series:
        typer.echo("No prices stored for this option.")
        return
    for obs in series:
        typer.echo(f"{obs.price_date}  {_fmt(obs.value, symbol)}  ({obs.source.value})")


@app.command(name="resolve-price")
def resolve_price(
    target_date: str = typer.Argument(..., help="Date to price (YYYY-MM-DD)"),
    exercise_price: str = typer.Argument(..., help="Exercise price of the option"),
    grant_date: str = typer.Argument(..., help="Grant date (YYYY-MM-DD)"),
    db: Path = _DB_OPTION,
) -> None:
    """Resolve the best available price for a date."""
    with _portfolio(db) as portfolio:
        resolved = portfolio.resolve_price_for_date(target_date, exercise_price, grant_date)
        symbol = _symbol(portfolio)
    if not resolved.is_available:
        typer.echo("N/A (no price available)")
        return
    typer.echo(
        f"{_fmt(resolved.price, symbol)} ({resolved.match_type.value}, from {resolved.source_date})"
    )


@app.command(name="import-prices")
def import_prices(
    file: Path = typer.Argument(..., help="KBC option price list (CSV)", exists=True),
    ingestion_date: str | None = typer.Option(
        None, "--date", help="Snapshot date for the import (default: today)"
    ),
    db: Path = _DB_OPTION,
) -> None:
    """Import option prices from a KBC price list."""
    from optionfolio.engines.validation import require_date
    from optionfolio.ingestion.kbc import KBCPriceListAdapter
    from optionfolio.models.enums import PriceSource

    adapter = KBCPriceListAdapter()
    with _portfolio(db) as portfolio:
        records = adapter.parse(file)
        for warning in adapter.validate(records):
            typer.echo(f"Warning: {warning}", err=True)
        when = require_date(ingestion_date, "date") if ingestion_date else None
        result = portfolio.ingest_prices(records, when, source=PriceSource.CSV)
    typer.echo(
        f"Imported {result.inserted} prices ({result.skipped} already stored, "
        f"{result.rejected} rejected) for {result.ingestion_date}"
    )


# --- Evolution timeline ---


@app.command()
def rebuild(
    from_date: str | None = typer.Option(
        None, "--from", help="First day to rebuild (default: first grant date)"
    ),
    db: Path = _DB_OPTION,
) -> None:
    """Recompute daily snapshots from stored grants, sales and prices."""
    from optionfolio.engines.validation import require_date

    with _portfolio(db) as portfolio:
        start = require_date(from_date, "from") if from_date else None
        progress = portfolio.iter_rebuild_evolution_timeline(start)
        while True:
            try:
                event = next(progress)
            except StopIteration as stop:
                result = stop.value
                break
            typer.echo(f"  {event.percent:3d}%  {event.message}")
    typer.echo(
        f"Rebuilt {result.days_processed} days: {result.snapshots_written} snapshots written"
    )


# --- Settings & reports ---


@app.command()
def settings(
    key: str | None = typer.Argument(None, help="Setting to show or change"),
    value: str | None = typer.Argument(None, help="New value"),
    db: Path = _DB_OPTION,
) -> None:
    """Show or change settings (tax_auto_rate, target_percentage, unit_cost, currency_symbol)."""
    with _portfolio(db) as portfolio:
        if key is None:
            for name, current in portfolio.get_settings().items():
                typer.echo(f"{name} = {current}")
            return
        if value is None:
            typer.echo(f"{key} = {portfolio.get_setting(key)}")
            return
        portfolio.update_setting(key, value)
        typer.echo(f"{key} = {portfolio.get_setting(key)}")


@app.command()
def report(
    kind: str = typer.Argument("summary", help="Report type: summary or evolution"),
    days: int | None = typer.Option(None, "--days", help="Evolution window in days"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write to a file"),
    db: Path = _DB_OPTION,
) -> None:
    """Render a text report."""
    from optionfolio.reports import EvolutionReportGenerator, PortfolioSummaryGenerator

    if kind not in ("summary", "evolution"):
        typer.echo(f"Error: unknown report type '{kind}'", err=True)
        raise typer.Exit(1)

    with _portfolio(db) as portfolio:
        symbol = _symbol(portfolio)
        if kind == "summary":
            text = PortfolioSummaryGenerator().render(portfolio.get_portfolio_overview(), symbol)
        else:
            lines = portfolio.get_portfolio_evolution(days)
            text = EvolutionReportGenerator().render(lines, symbol)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text)
        typer.echo(f"Report written to {output}")
    else:
        typer.echo(text)
