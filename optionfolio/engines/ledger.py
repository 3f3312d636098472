"""Grant ledger: creating, merging and deleting option grants."""

import logging
from collections.abc import Callable
from datetime import date
from decimal import Decimal

from optionfolio.db.repository import PortfolioRepository
from optionfolio.engines.evolution import EvolutionBuilder, format_money
from optionfolio.engines.tax import TaxAllocator
from optionfolio.engines.validation import (
    optional_tax,
    require_date,
    require_positive_decimal,
    require_positive_int,
)
from optionfolio.exceptions import DataValidationError, GrantNotFoundError
from optionfolio.models.grant import Grant
from optionfolio.models.results import MergeResult

logger = logging.getLogger(__name__)


class GrantLedger:
    """Owns grant records and their quantity and tax bookkeeping."""

    def __init__(
        self,
        repo: PortfolioRepository,
        evolution: EvolutionBuilder,
        today: Callable[[], date] = date.today,
    ):
        self.repo = repo
        self.evolution = evolution
        self.today = today

    def _require(self, grant_id: int) -> Grant:
        grant = self.repo.get_grant(grant_id)
        if grant is None:
            raise GrantNotFoundError(grant_id)
        return grant

    def _lookup_price(
        self, grant_date: date, exercise_reference: Decimal
    ) -> tuple[str | None, Decimal]:
        """Fund name and value from the latest matching observation, if any."""
        observation = self.repo.get_latest_price(exercise_reference, grant_date)
        if observation is None:
            observation = self.repo.get_latest_price_for_reference(exercise_reference)
        if observation is None:
            logger.warning(
                "No price known for exercise reference %s; fund left unknown",
                exercise_reference,
            )
            return None, Decimal("0")
        return observation.fund_name, observation.value

    def add(
        self,
        grant_date: date,
        exercise_reference: Decimal,
        quantity: int,
        manual_tax: Decimal | None = None,
    ) -> int:
        """Create a grant. Returns the new grant ID."""
        grant_date = require_date(grant_date, "grant_date")
        exercise_reference = require_positive_decimal(exercise_reference, "exercise_reference")
        quantity = require_positive_int(quantity, "quantity")
        manual_tax = optional_tax(manual_tax, "manual_tax")

        with self.repo.transaction():
            allocator = TaxAllocator.from_repository(self.repo)
            fund_name, current_value = self._lookup_price(grant_date, exercise_reference)
            grant = Grant(
                grant_date=grant_date,
                fund_name=fund_name,
                exercise_reference=exercise_reference,
                quantity=quantity,
                amount_granted=allocator.amount_granted(quantity),
                current_value=current_value,
                tax_amount=manual_tax,
                tax_auto_calculated=allocator.auto_tax(quantity),
                total_sold_quantity=0,
            )
            grant_id = self.repo.insert_grant(grant)
            self.evolution.upsert(
                self.today(),
                f"Grant added: {quantity} options ({fund_name or 'unknown fund'}, "
                f"granted {grant_date.isoformat()})",
            )
        logger.info("Added grant %d: %d options granted %s", grant_id, quantity, grant_date)
        return grant_id

    def check_existing(self, grant_date: date, exercise_reference: Decimal) -> list[Grant]:
        """Grants with unsold options for the same identity, newest first."""
        grant_date = require_date(grant_date, "grant_date")
        exercise_reference = require_positive_decimal(exercise_reference, "exercise_reference")
        return self.repo.find_open_grants(grant_date, exercise_reference)

    def merge(
        self,
        grant_id: int,
        additional_quantity: int,
        additional_manual_tax: Decimal | None = None,
    ) -> MergeResult:
        """Fold extra options into an existing grant."""
        if isinstance(additional_quantity, bool) or not isinstance(additional_quantity, int):
            raise DataValidationError(
                "additional_quantity", f"must be a whole number, got {additional_quantity!r}"
            )
        additional_manual_tax = optional_tax(additional_manual_tax, "additional_manual_tax")

        with self.repo.transaction():
            grant = self._require(grant_id)
            allocator = TaxAllocator.from_repository(self.repo)
            new_quantity = grant.quantity + additional_quantity
            new_amount_granted = allocator.amount_granted(new_quantity)
            if new_quantity <= 0 or new_amount_granted <= 0:
                raise DataValidationError(
                    "additional_quantity",
                    f"merged quantity must be positive, got {new_quantity}",
                )
            if new_quantity < grant.total_sold_quantity:
                raise DataValidationError(
                    "additional_quantity",
                    f"merged quantity {new_quantity} is below the "
                    f"{grant.total_sold_quantity} options already sold",
                )

            tax_amount, tax_auto, policy = allocator.merge(
                grant, additional_quantity, additional_manual_tax
            )
            merged = grant.model_copy(
                update={
                    "quantity": new_quantity,
                    "amount_granted": new_amount_granted,
                    "tax_amount": tax_amount,
                    "tax_auto_calculated": tax_auto,
                }
            )
            self.repo.update_grant(merged)
            self.evolution.upsert(
                self.today(),
                f"Grant merged: {additional_quantity:+d} options into grant {grant_id} "
                f"(now {new_quantity})",
            )
        logger.info(
            "Merged %d options into grant %d (%s)", additional_quantity, grant_id, policy
        )
        return MergeResult(
            grant=merged,
            previous_quantity=grant.quantity,
            added_quantity=additional_quantity,
            tax_policy=policy,
        )

    def delete(self, grant_id: int) -> Grant:
        """Delete a grant and its sales. Returns the deleted grant."""
        with self.repo.transaction():
            grant = self._require(grant_id)
            removed_sales = self.repo.delete_grant(grant_id)
            self.evolution.upsert(
                self.today(),
                f"Grant deleted: {grant.quantity_remaining} options "
                f"(granted {grant.grant_date.isoformat()})",
            )
        logger.info("Deleted grant %d and %d sales", grant_id, removed_sales)
        return grant

    def set_manual_tax(self, grant_id: int, amount: Decimal | None) -> Grant:
        """Set the manual tax override, or clear it with None."""
        amount = optional_tax(amount, "tax_amount")
        with self.repo.transaction():
            grant = self._require(grant_id)
            updated = grant.model_copy(update={"tax_amount": amount})
            self.repo.update_grant(updated)
            symbol = self.repo.get_setting("currency_symbol") or ""
            if amount is None:
                note = f"Tax for grant {grant_id} reset to automatic"
            else:
                note = f"Tax for grant {grant_id} set to {format_money(amount, symbol)}"
            self.evolution.upsert(self.today(), note)
        return updated
