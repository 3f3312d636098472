"""Data access layer for optionfolio."""

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from decimal import Decimal

from optionfolio.db.schema import DEFAULT_SETTINGS
from optionfolio.exceptions import ConsistencyError
from optionfolio.models.evolution import EvolutionSnapshot
from optionfolio.models.grant import Grant, SaleTransaction, canonical_reference
from optionfolio.models.prices import PriceObservation

_PRICE_COLUMNS = (
    "id, fund_name, exercise_reference, grant_date, price_date, value, source, scraped_at"
)


def _ref(value: Decimal) -> str:
    return str(canonical_reference(value))


def _opt(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _rows(cursor: sqlite3.Cursor) -> list[dict]:
    columns = [desc[0] for desc in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


def _expect_one(cursor: sqlite3.Cursor, table: str, key: object) -> None:
    if cursor.rowcount != 1:
        raise ConsistencyError(table, key, cursor.rowcount)


class PortfolioRepository:
    """CRUD operations for grants, sales, prices, snapshots and settings.

    The connection runs in autocommit mode. Writes that must land together
    go through ``transaction()``, which also serializes writers.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._lock = threading.RLock()
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the enclosed writes atomically. Nested calls join the outer one."""
        with self._lock:
            if self._depth == 0:
                self.conn.execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self.conn.execute("ROLLBACK")
                raise
            self._depth -= 1
            if self._depth == 0:
                try:
                    self.conn.execute("COMMIT")
                except sqlite3.Error:
                    # A failed COMMIT (e.g. SQLITE_BUSY) leaves the transaction open.
                    if self.conn.in_transaction:
                        self.conn.execute("ROLLBACK")
                    raise

    # --- Grants ---

    def insert_grant(self, grant: Grant) -> int:
        """Insert a grant record. Returns the new grant ID."""
        cursor = self.conn.execute(
            """INSERT INTO grants
               (grant_date, fund_name, exercise_reference, quantity,
                amount_granted, current_value, tax_amount,
                tax_auto_calculated, total_sold_quantity)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                grant.grant_date.isoformat(),
                grant.fund_name,
                _ref(grant.exercise_reference),
                grant.quantity,
                str(grant.amount_granted),
                str(grant.current_value),
                _opt(grant.tax_amount),
                str(grant.tax_auto_calculated),
                grant.total_sold_quantity,
            ),
        )
        return cursor.lastrowid

    def get_grant(self, grant_id: int) -> Grant | None:
        cursor = self.conn.execute("SELECT * FROM grants WHERE id = ?", (grant_id,))
        rows = _rows(cursor)
        return Grant(**rows[0]) if rows else None

    def list_grants(self, granted_on_or_before: date | None = None) -> list[Grant]:
        """Retrieve grants ordered by grant date, optionally up to a date."""
        if granted_on_or_before:
            cursor = self.conn.execute(
                "SELECT * FROM grants WHERE grant_date <= ? ORDER BY grant_date, id",
                (granted_on_or_before.isoformat(),),
            )
        else:
            cursor = self.conn.execute("SELECT * FROM grants ORDER BY grant_date, id")
        return [Grant(**row) for row in _rows(cursor)]

    def find_open_grants(self, grant_date: date, exercise_reference: Decimal) -> list[Grant]:
        """Grants for one option identity that still hold unsold options, newest first."""
        cursor = self.conn.execute(
            """SELECT * FROM grants
               WHERE grant_date = ? AND exercise_reference = ?
                 AND quantity - total_sold_quantity > 0
               ORDER BY created_at DESC, id DESC""",
            (grant_date.isoformat(), _ref(exercise_reference)),
        )
        return [Grant(**row) for row in _rows(cursor)]

    def update_grant(self, grant: Grant) -> None:
        """Write back the mutable quantity, tax and cache fields of a grant."""
        cursor = self.conn.execute(
            """UPDATE grants
               SET quantity = ?, amount_granted = ?, current_value = ?,
                   fund_name = ?, tax_amount = ?, tax_auto_calculated = ?,
                   total_sold_quantity = ?, updated_at = datetime('now')
               WHERE id = ?""",
            (
                grant.quantity,
                str(grant.amount_granted),
                str(grant.current_value),
                grant.fund_name,
                _opt(grant.tax_amount),
                str(grant.tax_auto_calculated),
                grant.total_sold_quantity,
                grant.id,
            ),
        )
        _expect_one(cursor, "grants", grant.id)

    def delete_grant(self, grant_id: int) -> int:
        """Delete a grant and its sales. Returns the number of sales removed."""
        sales = self.conn.execute(
            "DELETE FROM sale_transactions WHERE grant_id = ?", (grant_id,)
        )
        cursor = self.conn.execute("DELETE FROM grants WHERE id = ?", (grant_id,))
        _expect_one(cursor, "grants", grant_id)
        return sales.rowcount

    def get_grants_needing_price(self, price_date: date) -> list[Grant]:
        """Grants with unsold options and no stored price on ``price_date``."""
        cursor = self.conn.execute(
            """SELECT g.* FROM grants g
               WHERE g.quantity - g.total_sold_quantity > 0
                 AND NOT EXISTS (
                     SELECT 1 FROM price_observations p
                     WHERE p.exercise_reference = g.exercise_reference
                       AND p.grant_date = g.grant_date
                       AND p.price_date = ?
                 )
               ORDER BY g.grant_date, g.id""",
            (price_date.isoformat(),),
        )
        return [Grant(**row) for row in _rows(cursor)]

    # --- Sales ---

    def insert_sale(self, sale: SaleTransaction) -> int:
        """Insert a sale record. Returns the new sale ID."""
        cursor = self.conn.execute(
            """INSERT INTO sale_transactions
               (grant_id, sale_date, quantity_sold, sale_price,
                total_sale_value, tax_deducted, realized_gain_loss, notes)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                sale.grant_id,
                sale.sale_date.isoformat(),
                sale.quantity_sold,
                str(sale.sale_price),
                str(sale.total_sale_value),
                str(sale.tax_deducted),
                str(sale.realized_gain_loss),
                sale.notes,
            ),
        )
        return cursor.lastrowid

    def get_sale(self, sale_id: int) -> SaleTransaction | None:
        cursor = self.conn.execute(
            "SELECT * FROM sale_transactions WHERE id = ?", (sale_id,)
        )
        rows = _rows(cursor)
        return SaleTransaction(**rows[0]) if rows else None

    def update_sale(self, sale: SaleTransaction) -> None:
        """Write back the editable fields of a sale."""
        cursor = self.conn.execute(
            """UPDATE sale_transactions
               SET sale_date = ?, sale_price = ?, total_sale_value = ?,
                   realized_gain_loss = ?, notes = ?, updated_at = datetime('now')
               WHERE id = ?""",
            (
                sale.sale_date.isoformat(),
                str(sale.sale_price),
                str(sale.total_sale_value),
                str(sale.realized_gain_loss),
                sale.notes,
                sale.id,
            ),
        )
        _expect_one(cursor, "sale_transactions", sale.id)

    def list_sales(
        self, grant_id: int | None = None, sold_on_or_before: date | None = None
    ) -> list[SaleTransaction]:
        """Retrieve sales in date order, optionally for one grant or up to a date."""
        query = "SELECT * FROM sale_transactions WHERE 1 = 1"
        params: list = []
        if grant_id is not None:
            query += " AND grant_id = ?"
            params.append(grant_id)
        if sold_on_or_before is not None:
            query += " AND sale_date <= ?"
            params.append(sold_on_or_before.isoformat())
        query += " ORDER BY sale_date, id"
        cursor = self.conn.execute(query, params)
        return [SaleTransaction(**row) for row in _rows(cursor)]

    def sum_sold_quantity(self, grant_id: int) -> int:
        cursor = self.conn.execute(
            "SELECT COALESCE(SUM(quantity_sold), 0) FROM sale_transactions WHERE grant_id = ?",
            (grant_id,),
        )
        return cursor.fetchone()[0]

    # --- Price observations ---

    def insert_price(self, observation: PriceObservation) -> bool:
        """Store an observation unless its key already exists. Returns True if stored."""
        cursor = self.conn.execute(
            """INSERT OR IGNORE INTO price_observations
               (fund_name, exercise_reference, grant_date, price_date, value, source)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                observation.fund_name,
                _ref(observation.exercise_reference),
                observation.grant_date.isoformat(),
                observation.price_date.isoformat(),
                str(observation.value),
                observation.source.value,
            ),
        )
        return cursor.rowcount == 1

    def _one_price(self, where: str, params: tuple) -> PriceObservation | None:
        cursor = self.conn.execute(
            f"SELECT {_PRICE_COLUMNS} FROM price_observations WHERE {where} LIMIT 1",
            params,
        )
        rows = _rows(cursor)
        return PriceObservation(**rows[0]) if rows else None

    def get_price_on(
        self, exercise_reference: Decimal, grant_date: date, price_date: date
    ) -> PriceObservation | None:
        return self._one_price(
            "exercise_reference = ? AND grant_date = ? AND price_date = ?",
            (_ref(exercise_reference), grant_date.isoformat(), price_date.isoformat()),
        )

    def get_latest_price(
        self,
        exercise_reference: Decimal,
        grant_date: date,
        on_or_before: date | None = None,
    ) -> PriceObservation | None:
        """Most recent observation for an option identity."""
        if on_or_before is None:
            return self._one_price(
                "exercise_reference = ? AND grant_date = ? ORDER BY price_date DESC",
                (_ref(exercise_reference), grant_date.isoformat()),
            )
        return self._one_price(
            "exercise_reference = ? AND grant_date = ? AND price_date <= ? "
            "ORDER BY price_date DESC",
            (_ref(exercise_reference), grant_date.isoformat(), on_or_before.isoformat()),
        )

    def get_latest_price_for_reference(
        self, exercise_reference: Decimal
    ) -> PriceObservation | None:
        """Most recent observation for an exercise reference across grant dates."""
        return self._one_price(
            "exercise_reference = ? ORDER BY price_date DESC, scraped_at DESC, id DESC",
            (_ref(exercise_reference),),
        )

    def get_price_before(
        self, exercise_reference: Decimal, grant_date: date, target: date
    ) -> PriceObservation | None:
        """Closest observation strictly before ``target``."""
        return self._one_price(
            "exercise_reference = ? AND grant_date = ? AND price_date < ? "
            "ORDER BY price_date DESC",
            (_ref(exercise_reference), grant_date.isoformat(), target.isoformat()),
        )

    def get_price_after(
        self, exercise_reference: Decimal, grant_date: date, target: date
    ) -> PriceObservation | None:
        """Closest observation strictly after ``target``."""
        return self._one_price(
            "exercise_reference = ? AND grant_date = ? AND price_date > ? "
            "ORDER BY price_date ASC",
            (_ref(exercise_reference), grant_date.isoformat(), target.isoformat()),
        )

    def get_price_series(
        self, exercise_reference: Decimal, grant_date: date
    ) -> list[PriceObservation]:
        """All observations for an option identity, oldest first."""
        cursor = self.conn.execute(
            f"""SELECT {_PRICE_COLUMNS} FROM price_observations
                WHERE exercise_reference = ? AND grant_date = ?
                ORDER BY price_date ASC""",
            (_ref(exercise_reference), grant_date.isoformat()),
        )
        return [PriceObservation(**row) for row in _rows(cursor)]

    def list_latest_prices(self) -> list[PriceObservation]:
        """Latest observation per option identity, ordered by fund and reference."""
        cursor = self.conn.execute(
            f"""SELECT {_PRICE_COLUMNS} FROM price_observations p
                WHERE p.price_date = (
                    SELECT MAX(q.price_date) FROM price_observations q
                    WHERE q.exercise_reference = p.exercise_reference
                      AND q.grant_date = p.grant_date
                )
                ORDER BY p.fund_name, p.grant_date, p.exercise_reference"""
        )
        return [PriceObservation(**row) for row in _rows(cursor)]

    # --- Evolution snapshots ---

    def get_snapshot(self, snapshot_date: date) -> EvolutionSnapshot | None:
        cursor = self.conn.execute(
            "SELECT * FROM evolution_snapshots WHERE snapshot_date = ?",
            (snapshot_date.isoformat(),),
        )
        rows = _rows(cursor)
        return EvolutionSnapshot(**rows[0]) if rows else None

    def insert_snapshot(self, snapshot: EvolutionSnapshot) -> int:
        """Insert an evolution snapshot. Returns the snapshot ID."""
        cursor = self.conn.execute(
            """INSERT INTO evolution_snapshots
               (snapshot_date, total_portfolio_value, total_unrealized_gain,
                total_realized_gain, total_options_count, active_options_count, notes)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                snapshot.snapshot_date.isoformat(),
                str(snapshot.total_portfolio_value),
                str(snapshot.total_unrealized_gain),
                str(snapshot.total_realized_gain),
                snapshot.total_options_count,
                snapshot.active_options_count,
                snapshot.notes,
            ),
        )
        return cursor.lastrowid

    def update_snapshot(self, snapshot: EvolutionSnapshot) -> None:
        cursor = self.conn.execute(
            """UPDATE evolution_snapshots
               SET total_portfolio_value = ?, total_unrealized_gain = ?,
                   total_realized_gain = ?, total_options_count = ?,
                   active_options_count = ?, notes = ?, updated_at = datetime('now')
               WHERE snapshot_date = ?""",
            (
                str(snapshot.total_portfolio_value),
                str(snapshot.total_unrealized_gain),
                str(snapshot.total_realized_gain),
                snapshot.total_options_count,
                snapshot.active_options_count,
                snapshot.notes,
                snapshot.snapshot_date.isoformat(),
            ),
        )
        _expect_one(cursor, "evolution_snapshots", snapshot.snapshot_date.isoformat())

    def list_snapshots(self, since: date | None = None) -> list[EvolutionSnapshot]:
        """Retrieve snapshots oldest first, optionally from a date onwards."""
        if since:
            cursor = self.conn.execute(
                """SELECT * FROM evolution_snapshots
                   WHERE snapshot_date >= ? ORDER BY snapshot_date""",
                (since.isoformat(),),
            )
        else:
            cursor = self.conn.execute(
                "SELECT * FROM evolution_snapshots ORDER BY snapshot_date"
            )
        return [EvolutionSnapshot(**row) for row in _rows(cursor)]

    # --- Settings ---

    def get_settings(self) -> dict[str, str]:
        cursor = self.conn.execute("SELECT key, value FROM settings ORDER BY key")
        return {key: value for key, value in cursor.fetchall()}

    def get_setting(self, key: str) -> str | None:
        row = self.conn.execute(
            "SELECT value FROM settings WHERE key = ?", (key,)
        ).fetchone()
        if row:
            return row[0]
        return DEFAULT_SETTINGS.get(key)

    def get_setting_decimal(self, key: str) -> Decimal:
        """Read a numeric setting, falling back to its default."""
        value = self.get_setting(key)
        if value is None:
            raise KeyError(key)
        return Decimal(value)

    def set_setting(self, key: str, value: str) -> None:
        self.conn.execute(
            """INSERT INTO settings (key, value) VALUES (?, ?)
               ON CONFLICT(key) DO UPDATE
               SET value = excluded.value, updated_at = datetime('now')""",
            (key, value),
        )
