"""Sale transaction processor: recording and editing option sales."""

import logging
from collections.abc import Callable
from datetime import date
from decimal import Decimal

from optionfolio.db.repository import PortfolioRepository
from optionfolio.engines.evolution import EvolutionBuilder, format_money, sale_note
from optionfolio.engines.tax import TaxAllocator
from optionfolio.engines.validation import (
    require_date,
    require_positive_decimal,
    require_positive_int,
)
from optionfolio.exceptions import (
    CapacityError,
    DataValidationError,
    GrantNotFoundError,
    SaleNotFoundError,
)
from optionfolio.models.grant import SaleTransaction
from optionfolio.models.results import EditOutcome, SaleOutcome

logger = logging.getLogger(__name__)


class SaleProcessor:
    """Records sales against grants and reallocates the grant's tax."""

    def __init__(
        self,
        repo: PortfolioRepository,
        evolution: EvolutionBuilder,
        today: Callable[[], date] = date.today,
    ):
        self.repo = repo
        self.evolution = evolution
        self.today = today

    def record_sale(
        self,
        grant_id: int,
        sale_date: date,
        quantity_sold: int,
        sale_price: Decimal,
        notes: str | None = None,
    ) -> SaleOutcome:
        """Sell options from a grant.

        Proceeds are not reduced by tax; the tax allocated to the sale is
        stored on the transaction for reference only.
        """
        sale_date = require_date(sale_date, "sale_date")
        quantity_sold = require_positive_int(quantity_sold, "quantity_sold")
        sale_price = require_positive_decimal(sale_price, "sale_price")

        with self.repo.transaction():
            grant = self.repo.get_grant(grant_id)
            if grant is None:
                raise GrantNotFoundError(grant_id)
            if quantity_sold > grant.quantity_remaining:
                raise CapacityError(grant_id, quantity_sold, grant.quantity_remaining)

            allocator = TaxAllocator.from_repository(self.repo)
            allocation = allocator.allocate_sale(grant, quantity_sold)
            total_sale_value = Decimal(quantity_sold) * sale_price
            cost_basis = Decimal(quantity_sold) * allocator.unit_cost
            realized_gain_loss = total_sale_value - cost_basis

            sale = SaleTransaction(
                grant_id=grant_id,
                sale_date=sale_date,
                quantity_sold=quantity_sold,
                sale_price=sale_price,
                total_sale_value=total_sale_value,
                tax_deducted=allocation.allocated,
                realized_gain_loss=realized_gain_loss,
                notes=notes,
            )
            sale_id = self.repo.insert_sale(sale)

            tax_amount, tax_auto = allocator.write_back(grant, allocation.remaining_tax)
            updated = grant.model_copy(
                update={
                    "total_sold_quantity": grant.total_sold_quantity + quantity_sold,
                    "tax_amount": tax_amount,
                    "tax_auto_calculated": tax_auto,
                }
            )
            self.repo.update_grant(updated)

            symbol = self.repo.get_setting("currency_symbol") or ""
            self.evolution.upsert(sale_date, sale_note(quantity_sold, sale_price, symbol))

        logger.info(
            "Recorded sale %d: %d options of grant %d at %s",
            sale_id, quantity_sold, grant_id, sale_price,
        )
        return SaleOutcome(
            sale_id=sale_id,
            grant_id=grant_id,
            tax_allocated=allocation.allocated,
            realized_gain_loss=realized_gain_loss,
            total_sale_value=total_sale_value,
            remaining_tax=allocation.remaining_tax,
            quantity_remaining=updated.quantity_remaining,
        )

    def edit_sale(
        self,
        sale_id: int,
        new_sale_date: date,
        new_sale_price: Decimal,
        new_notes: str | None = None,
    ) -> EditOutcome:
        """Correct the date, price or notes of a recorded sale.

        Value and realized gain are recomputed against the unit cost. Tax
        stays as allocated at the original sale. ``new_notes`` of None keeps
        the existing notes; an empty string clears them. A changed date or
        price rebuilds the snapshots from the earlier of the two dates.
        """
        new_sale_date = require_date(new_sale_date, "sale_date")
        if new_sale_date > self.today():
            raise DataValidationError(
                "sale_date", f"{new_sale_date.isoformat()} is in the future"
            )
        new_sale_price = require_positive_decimal(new_sale_price, "sale_price")

        with self.repo.transaction():
            sale = self.repo.get_sale(sale_id)
            if sale is None:
                raise SaleNotFoundError(sale_id)
            unit_cost = self.repo.get_setting_decimal("unit_cost")
            quantity = Decimal(sale.quantity_sold)
            total_sale_value = new_sale_price * quantity
            edited = sale.model_copy(
                update={
                    "sale_date": new_sale_date,
                    "sale_price": new_sale_price,
                    "total_sale_value": total_sale_value,
                    "realized_gain_loss": total_sale_value - quantity * unit_cost,
                    "notes": sale.notes if new_notes is None else (new_notes or None),
                }
            )
            self.repo.update_sale(edited)
            if new_sale_date != sale.sale_date or new_sale_price != sale.sale_price:
                self.evolution.rebuild(min(sale.sale_date, new_sale_date))
            symbol = self.repo.get_setting("currency_symbol") or ""
            self.evolution.upsert(
                new_sale_date,
                f"Sale edited: {sale.quantity_sold} options at "
                f"{format_money(new_sale_price, symbol)}",
            )
        logger.info("Edited sale %d: %s at %s", sale_id, new_sale_date, new_sale_price)
        return EditOutcome(
            sale=edited,
            previous_sale_date=sale.sale_date,
            previous_sale_price=sale.sale_price,
        )
