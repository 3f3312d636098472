"""Tests for adding, merging, deleting and re-taxing grants."""

from datetime import date
from decimal import Decimal

import pytest

from optionfolio.exceptions import DataValidationError, GrantNotFoundError
from optionfolio.models.enums import TaxMergePolicy

TODAY = date(2024, 6, 15)
GRANT_DATE = date(2024, 1, 10)
REFERENCE = Decimal("25.50")
FUND = "KBC Equity Fund World"


class TestAddGrant:
    def test_auto_tax_and_amount(self, portfolio, sample_grant_id):
        grant = portfolio.get_grant(sample_grant_id)
        assert grant.quantity == 100
        assert grant.amount_granted == Decimal("1000")
        assert grant.tax_auto_calculated == Decimal("300")
        assert grant.tax_amount is None
        assert grant.total_sold_quantity == 0

    def test_manual_tax_is_kept_alongside_auto(self, portfolio):
        grant_id = portfolio.add_grant(GRANT_DATE, REFERENCE, 50, manual_tax=Decimal("90"))
        grant = portfolio.get_grant(grant_id)
        assert grant.tax_amount == Decimal("90")
        assert grant.tax_auto_calculated == Decimal("150")
        assert grant.authoritative_tax == Decimal("90")

    def test_fund_and_value_from_price_store(self, portfolio, add_price):
        add_price(date(2024, 5, 1), "41.5")
        grant_id = portfolio.add_grant(GRANT_DATE, REFERENCE, 10)
        grant = portfolio.get_grant(grant_id)
        assert grant.fund_name == FUND
        assert grant.current_value == Decimal("41.5")

    def test_unknown_fund_without_prices(self, portfolio, sample_grant_id):
        grant = portfolio.get_grant(sample_grant_id)
        assert grant.fund_name is None
        assert grant.current_value == Decimal("0")

    def test_writes_snapshot_for_today(self, portfolio, repo, sample_grant_id):
        snapshot = repo.get_snapshot(TODAY)
        assert snapshot.note_lines == [
            "• Grant added: 100 options (unknown fund, granted 2024-01-10)"
        ]
        assert snapshot.total_options_count == 100
        assert snapshot.active_options_count == 100

    def test_accepts_iso_strings(self, portfolio):
        grant_id = portfolio.add_grant("2024-01-10", "25.50", 5)
        assert portfolio.get_grant(grant_id).grant_date == GRANT_DATE

    @pytest.mark.parametrize("quantity", [0, -5, 2.5, True, None])
    def test_rejects_bad_quantity(self, portfolio, quantity):
        with pytest.raises(DataValidationError):
            portfolio.add_grant(GRANT_DATE, REFERENCE, quantity)

    def test_rejects_bad_date(self, portfolio):
        with pytest.raises(DataValidationError, match="grant_date"):
            portfolio.add_grant("10/01/2024", REFERENCE, 5)

    def test_rejects_non_positive_reference(self, portfolio):
        with pytest.raises(DataValidationError, match="exercise_reference"):
            portfolio.add_grant(GRANT_DATE, Decimal("0"), 5)

    def test_rejects_negative_manual_tax(self, portfolio, repo):
        with pytest.raises(DataValidationError):
            portfolio.add_grant(GRANT_DATE, REFERENCE, 5, manual_tax=Decimal("-1"))
        assert repo.list_grants() == []


class TestCheckExisting:
    def test_finds_open_grants_newest_first(self, portfolio):
        first = portfolio.add_grant(GRANT_DATE, REFERENCE, 10)
        second = portfolio.add_grant(GRANT_DATE, Decimal("25.5"), 20)
        portfolio.add_grant(GRANT_DATE, Decimal("30"), 20)
        found = portfolio.check_existing_grant(GRANT_DATE, REFERENCE)
        assert [grant.id for grant in found] == [second, first]

    def test_ignores_sold_out_grants(self, portfolio, clock):
        grant_id = portfolio.add_grant(GRANT_DATE, REFERENCE, 10)
        portfolio.record_sale(grant_id, date(2024, 6, 1), 10, Decimal("12"))
        assert portfolio.check_existing_grant(GRANT_DATE, REFERENCE) == []


class TestMergeGrant:
    def test_auto_grant_extends_auto_tax(self, portfolio, sample_grant_id):
        result = portfolio.merge_grant(sample_grant_id, 50)
        assert result.tax_policy == TaxMergePolicy.AUTO_EXTENDED
        assert result.previous_quantity == 100
        assert result.new_quantity == 150
        assert result.new_amount_granted == Decimal("1500")
        assert result.new_tax == Decimal("450")

        stored = portfolio.get_grant(sample_grant_id)
        assert stored.quantity == 150
        assert stored.tax_amount is None

    def test_manual_additional_tax(self, portfolio, sample_grant_id):
        result = portfolio.merge_grant(sample_grant_id, 50, Decimal("100"))
        assert result.tax_policy == TaxMergePolicy.MANUAL_ADDITIONAL
        stored = portfolio.get_grant(sample_grant_id)
        assert stored.tax_amount == Decimal("400")
        assert stored.tax_auto_calculated == Decimal("300")

    def test_manual_grant_extended_with_auto(self, portfolio):
        grant_id = portfolio.add_grant(GRANT_DATE, REFERENCE, 100, manual_tax=Decimal("250"))
        result = portfolio.merge_grant(grant_id, 50)
        assert result.tax_policy == TaxMergePolicy.MANUAL_EXTENDED
        assert portfolio.get_grant(grant_id).tax_amount == Decimal("400")

    def test_negative_merge_reduces_quantity(self, portfolio, sample_grant_id):
        result = portfolio.merge_grant(sample_grant_id, -30)
        assert result.new_quantity == 70
        assert result.new_amount_granted == Decimal("700")

    def test_rejects_non_positive_result(self, portfolio, sample_grant_id):
        with pytest.raises(DataValidationError, match="positive"):
            portfolio.merge_grant(sample_grant_id, -100)
        assert portfolio.get_grant(sample_grant_id).quantity == 100

    def test_rejects_dropping_below_sold(self, portfolio, sample_grant_id):
        portfolio.record_sale(sample_grant_id, date(2024, 6, 1), 40, Decimal("12"))
        with pytest.raises(DataValidationError, match="already sold"):
            portfolio.merge_grant(sample_grant_id, -70)

    def test_rejects_fractional_quantity(self, portfolio, sample_grant_id):
        with pytest.raises(DataValidationError):
            portfolio.merge_grant(sample_grant_id, 1.5)

    def test_missing_grant(self, portfolio):
        with pytest.raises(GrantNotFoundError):
            portfolio.merge_grant(999, 10)

    def test_merge_note(self, portfolio, repo, sample_grant_id):
        portfolio.merge_grant(sample_grant_id, 50)
        notes = repo.get_snapshot(TODAY).note_lines
        assert f"• Grant merged: +50 options into grant {sample_grant_id} (now 150)" in notes


class TestDeleteGrant:
    def test_removes_grant_and_sales(self, portfolio, repo, sample_grant_id):
        portfolio.record_sale(sample_grant_id, date(2024, 6, 1), 10, Decimal("12"))
        deleted = portfolio.delete_grant(sample_grant_id)
        assert deleted.id == sample_grant_id
        assert portfolio.get_grant(sample_grant_id) is None
        assert repo.list_sales() == []

    def test_snapshot_reflects_deletion(self, portfolio, repo, sample_grant_id):
        portfolio.delete_grant(sample_grant_id)
        snapshot = repo.get_snapshot(TODAY)
        assert snapshot.total_options_count == 0
        assert "• Grant deleted: 100 options (granted 2024-01-10)" in snapshot.note_lines

    def test_missing_grant(self, portfolio):
        with pytest.raises(GrantNotFoundError):
            portfolio.delete_grant(42)


class TestSetManualTax:
    def test_set_and_reset(self, portfolio, repo, sample_grant_id):
        updated = portfolio.set_manual_tax(sample_grant_id, Decimal("120"))
        assert updated.authoritative_tax == Decimal("120")

        reset = portfolio.set_manual_tax(sample_grant_id, None)
        assert reset.tax_amount is None
        assert reset.authoritative_tax == Decimal("300")

        notes = repo.get_snapshot(TODAY).note_lines
        assert f"• Tax for grant {sample_grant_id} set to €120.00" in notes
        assert f"• Tax for grant {sample_grant_id} reset to automatic" in notes

    def test_rejects_negative(self, portfolio, sample_grant_id):
        with pytest.raises(DataValidationError):
            portfolio.set_manual_tax(sample_grant_id, Decimal("-5"))
