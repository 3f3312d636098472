"""Tests for the schema, migrations and repository."""

import sqlite3
from datetime import date
from decimal import Decimal

import pytest

from optionfolio.db.migrations import get_current_version
from optionfolio.db.repository import PortfolioRepository
from optionfolio.db.schema import SCHEMA_VERSION, create_schema
from optionfolio.exceptions import ConsistencyError
from optionfolio.models.evolution import EvolutionSnapshot
from optionfolio.models.grant import Grant
from optionfolio.models.prices import PriceObservation

GRANT_DATE = date(2024, 1, 10)
REFERENCE = Decimal("25.50")
FUND = "KBC Equity Fund World"


def _grant(**overrides) -> Grant:
    fields = dict(
        grant_date=GRANT_DATE,
        exercise_reference=REFERENCE,
        quantity=100,
        amount_granted=Decimal("1000"),
        tax_auto_calculated=Decimal("300"),
    )
    fields.update(overrides)
    return Grant(**fields)


class TestSchema:
    def test_version_recorded(self, db_conn):
        assert get_current_version(db_conn) == SCHEMA_VERSION

    def test_reopening_keeps_data(self, tmp_path):
        path = tmp_path / "reopen.db"
        conn = create_schema(path)
        PortfolioRepository(conn).set_setting("unit_cost", "12")
        conn.close()

        conn = create_schema(path)
        assert PortfolioRepository(conn).get_setting("unit_cost") == "12"
        assert get_current_version(conn) == SCHEMA_VERSION
        conn.close()

    def test_migrates_version_one(self, tmp_path):
        path = tmp_path / "v1.db"
        old = sqlite3.connect(str(path))
        old.executescript(
            """
            CREATE TABLE schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TEXT NOT NULL DEFAULT (datetime('now'))
            );
            INSERT INTO schema_version (version) VALUES (1);
            CREATE TABLE sale_transactions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                grant_id INTEGER NOT NULL,
                sale_date TEXT NOT NULL,
                quantity_sold INTEGER NOT NULL,
                sale_price TEXT NOT NULL,
                total_sale_value TEXT NOT NULL,
                tax_deducted TEXT NOT NULL DEFAULT '0',
                realized_gain_loss TEXT NOT NULL,
                notes TEXT,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            );
            INSERT INTO sale_transactions
                (grant_id, sale_date, quantity_sold, sale_price, total_sale_value,
                 realized_gain_loss, created_at)
            VALUES (1, '2024-04-01', 10, '12', '120', '20', '2024-04-01 10:00:00');
            """
        )
        old.close()

        conn = create_schema(path)
        assert get_current_version(conn) == 2
        sale = PortfolioRepository(conn).get_sale(1)
        assert sale.updated_at == sale.created_at
        conn.close()


class TestSettings:
    def test_defaults_seeded(self, repo):
        assert repo.get_settings() == {
            "currency_symbol": "€",
            "target_percentage": "65",
            "tax_auto_rate": "30",
            "unit_cost": "10",
        }

    def test_upsert(self, repo):
        repo.set_setting("tax_auto_rate", "25")
        repo.set_setting("tax_auto_rate", "27.5")
        assert repo.get_setting_decimal("tax_auto_rate") == Decimal("27.5")

    def test_missing_row_falls_back_to_default(self, repo, db_conn):
        db_conn.execute("DELETE FROM settings WHERE key = 'unit_cost'")
        assert repo.get_setting("unit_cost") == "10"

    def test_unknown_numeric_setting(self, repo):
        with pytest.raises(KeyError):
            repo.get_setting_decimal("no_such_setting")


class TestTransactions:
    def test_rollback_on_error(self, repo):
        with pytest.raises(RuntimeError):
            with repo.transaction():
                repo.insert_grant(_grant())
                raise RuntimeError("abort")
        assert repo.list_grants() == []

    def test_nested_joins_outer(self, repo):
        with pytest.raises(RuntimeError):
            with repo.transaction():
                repo.insert_grant(_grant())
                with repo.transaction():
                    repo.insert_grant(_grant(quantity=5, amount_granted=Decimal("50")))
                raise RuntimeError("abort")
        assert repo.list_grants() == []

    def test_commit(self, repo):
        with repo.transaction():
            repo.insert_grant(_grant())
        assert len(repo.list_grants()) == 1

    def test_failed_commit_rolls_back(self, db_conn):
        class BusyOnFirstCommit:
            def __init__(self, conn):
                self._conn = conn
                self.busy = True

            @property
            def in_transaction(self):
                return self._conn.in_transaction

            def execute(self, sql, *params):
                if sql == "COMMIT" and self.busy:
                    self.busy = False
                    raise sqlite3.OperationalError("database is locked")
                return self._conn.execute(sql, *params)

        repo = PortfolioRepository(BusyOnFirstCommit(db_conn))
        with pytest.raises(sqlite3.OperationalError):
            with repo.transaction():
                repo.insert_grant(_grant())

        assert not db_conn.in_transaction
        assert repo.list_grants() == []

        with repo.transaction():
            repo.insert_grant(_grant())
        assert len(repo.list_grants()) == 1


class TestGrants:
    def test_round_trip_keeps_decimals(self, repo):
        grant_id = repo.insert_grant(_grant(tax_amount=Decimal("123.45")))
        stored = repo.get_grant(grant_id)
        assert stored.tax_amount == Decimal("123.45")
        assert str(stored.exercise_reference) == "25.5"

    def test_update_missing_grant(self, repo):
        with pytest.raises(ConsistencyError) as excinfo:
            repo.update_grant(_grant(id=999))
        assert excinfo.value.rowcount == 0

    def test_delete_cascades_sales(self, repo, portfolio, sample_grant_id):
        portfolio.record_sale(sample_grant_id, date(2024, 6, 1), 5, Decimal("12"))
        assert repo.delete_grant(sample_grant_id) == 1

    def test_sold_cannot_exceed_quantity(self, repo, db_conn):
        grant_id = repo.insert_grant(_grant())
        with pytest.raises(sqlite3.IntegrityError):
            db_conn.execute(
                "UPDATE grants SET total_sold_quantity = 101 WHERE id = ?", (grant_id,)
            )

    def test_grants_needing_price(self, repo, add_price):
        repo.insert_grant(_grant())
        unpriced = repo.insert_grant(_grant(grant_date=date(2023, 1, 10)))
        add_price(date(2024, 6, 15), "40")
        assert [g.id for g in repo.get_grants_needing_price(date(2024, 6, 15))] == [unpriced]


class TestPrices:
    def _observation(self, price_date, value="40") -> PriceObservation:
        return PriceObservation(
            fund_name=FUND,
            exercise_reference=REFERENCE,
            grant_date=GRANT_DATE,
            price_date=price_date,
            value=Decimal(value),
        )

    def test_duplicate_key_is_ignored(self, repo):
        assert repo.insert_price(self._observation(date(2024, 3, 1))) is True
        assert repo.insert_price(self._observation(date(2024, 3, 1), "99")) is False
        assert repo.get_price_on(REFERENCE, GRANT_DATE, date(2024, 3, 1)).value == Decimal("40")

    def test_latest_on_or_before(self, repo):
        repo.insert_price(self._observation(date(2024, 3, 1), "30"))
        repo.insert_price(self._observation(date(2024, 5, 1), "35"))
        latest = repo.get_latest_price(REFERENCE, GRANT_DATE, on_or_before=date(2024, 4, 1))
        assert latest.value == Decimal("30")

    def test_positive_values_only(self):
        with pytest.raises(ValueError):
            self._observation(date(2024, 3, 1), "0")


class TestSnapshots:
    def test_unique_per_day(self, repo):
        repo.insert_snapshot(EvolutionSnapshot(snapshot_date=date(2024, 6, 1)))
        with pytest.raises(sqlite3.IntegrityError):
            repo.insert_snapshot(EvolutionSnapshot(snapshot_date=date(2024, 6, 1)))

    def test_update_missing_snapshot(self, repo):
        with pytest.raises(ConsistencyError):
            repo.update_snapshot(EvolutionSnapshot(snapshot_date=date(2024, 6, 1)))

    def test_list_since(self, repo):
        for day in (1, 5, 9):
            repo.insert_snapshot(EvolutionSnapshot(snapshot_date=date(2024, 6, day)))
        days = [s.snapshot_date.day for s in repo.list_snapshots(since=date(2024, 6, 5))]
        assert days == [5, 9]
