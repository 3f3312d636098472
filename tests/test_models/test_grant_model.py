"""Tests for grant and sale record models."""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from optionfolio.models.evolution import EvolutionSnapshot, ProgressEvent
from optionfolio.models.grant import Grant, SaleTransaction


def _grant(**overrides) -> Grant:
    fields = dict(
        id=1,
        grant_date=date(2024, 1, 10),
        exercise_reference=Decimal("25.50"),
        quantity=100,
        amount_granted=Decimal("1000"),
        tax_auto_calculated=Decimal("300"),
    )
    fields.update(overrides)
    return Grant(**fields)


class TestGrant:
    def test_quantity_remaining(self):
        grant = _grant(total_sold_quantity=40)
        assert grant.quantity_remaining == 60

    def test_auto_tax_is_authoritative_without_manual(self):
        grant = _grant()
        assert grant.has_manual_tax is False
        assert grant.authoritative_tax == Decimal("300")

    def test_manual_tax_takes_precedence(self):
        grant = _grant(tax_amount=Decimal("250"))
        assert grant.authoritative_tax == Decimal("250")
        assert grant.tax_auto_calculated == Decimal("300")

    def test_zero_manual_tax_still_overrides(self):
        grant = _grant(tax_amount=Decimal("0"))
        assert grant.authoritative_tax == Decimal("0")

    def test_rejects_sold_above_quantity(self):
        with pytest.raises(ValidationError, match="exceeds quantity"):
            _grant(total_sold_quantity=101)

    def test_rejects_negative_quantity(self):
        with pytest.raises(ValidationError):
            _grant(quantity=-1)

    def test_exercise_reference_normalized(self):
        assert str(_grant(exercise_reference=Decimal("25.50")).exercise_reference) == "25.5"
        assert str(_grant(exercise_reference=Decimal("10.00")).exercise_reference) == "10"

    def test_parses_stored_text_columns(self):
        grant = Grant(
            id=3,
            grant_date="2024-01-10",
            exercise_reference="10",
            quantity=5,
            amount_granted="50",
            tax_auto_calculated="15",
            created_at="2024-01-10 08:30:00",
        )
        assert grant.grant_date == date(2024, 1, 10)
        assert grant.amount_granted == Decimal("50")
        assert grant.created_at.hour == 8


class TestSaleTransaction:
    def test_rejects_zero_quantity(self):
        with pytest.raises(ValidationError):
            SaleTransaction(
                grant_id=1,
                sale_date=date(2024, 6, 1),
                quantity_sold=0,
                sale_price=Decimal("12"),
                total_sale_value=Decimal("0"),
                realized_gain_loss=Decimal("0"),
            )

    def test_rejects_non_positive_price(self):
        with pytest.raises(ValidationError):
            SaleTransaction(
                grant_id=1,
                sale_date=date(2024, 6, 1),
                quantity_sold=1,
                sale_price=Decimal("0"),
                total_sale_value=Decimal("0"),
                realized_gain_loss=Decimal("-10"),
            )


class TestEvolutionModels:
    def test_note_lines_skip_blanks(self):
        snapshot = EvolutionSnapshot(snapshot_date=date(2024, 6, 1), notes="• a\n\n• b")
        assert snapshot.note_lines == ["• a", "• b"]

    def test_note_lines_empty(self):
        assert EvolutionSnapshot(snapshot_date=date(2024, 6, 1)).note_lines == []

    def test_progress_percent(self):
        assert ProgressEvent(stage="rebuild", current=5, total=20).percent == 25
        assert ProgressEvent(stage="rebuild", current=0, total=0).percent == 100
