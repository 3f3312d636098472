"""Tax allocation: auto tax, merge policy and proportional reallocation on sale."""

from dataclasses import dataclass
from decimal import Decimal

from optionfolio.models.enums import TaxMergePolicy
from optionfolio.models.grant import Grant


@dataclass(frozen=True)
class SaleTaxAllocation:
    """How a sale splits a grant's outstanding tax."""

    total_tax: Decimal
    remaining_before: int
    per_option_tax: Decimal
    allocated: Decimal
    remaining_tax: Decimal


class TaxAllocator:
    """Computes grant tax and moves it between the manual and auto fields."""

    def __init__(self, tax_rate: Decimal, unit_cost: Decimal):
        self.tax_rate = tax_rate
        self.unit_cost = unit_cost

    @classmethod
    def from_repository(cls, repo) -> "TaxAllocator":
        """Build an allocator from the stored tax rate and unit cost settings."""
        return cls(
            tax_rate=repo.get_setting_decimal("tax_auto_rate"),
            unit_cost=repo.get_setting_decimal("unit_cost"),
        )

    def amount_granted(self, quantity: int) -> Decimal:
        return Decimal(quantity) * self.unit_cost

    def auto_tax(self, quantity: int) -> Decimal:
        """quantity x unit cost x rate / 100."""
        return Decimal(quantity) * self.unit_cost * self.tax_rate / Decimal("100")

    def merge(
        self,
        grant: Grant,
        additional_quantity: int,
        additional_manual_tax: Decimal | None = None,
    ) -> tuple[Decimal | None, Decimal, TaxMergePolicy]:
        """Work out the tax fields after adding options to an existing grant.

        Args:
            grant: The grant being extended, as currently stored.
            additional_quantity: Options added by the merge.
            additional_manual_tax: Tax the caller wants added on top, if any.

        Returns:
            (tax_amount, tax_auto_calculated, policy) for the merged grant.
        """
        if additional_manual_tax is not None and additional_manual_tax > 0:
            return (
                grant.authoritative_tax + additional_manual_tax,
                grant.tax_auto_calculated,
                TaxMergePolicy.MANUAL_ADDITIONAL,
            )
        if grant.tax_amount is not None:
            return (
                grant.tax_amount + self.auto_tax(additional_quantity),
                grant.tax_auto_calculated,
                TaxMergePolicy.MANUAL_EXTENDED,
            )
        return (
            None,
            grant.tax_auto_calculated + self.auto_tax(additional_quantity),
            TaxMergePolicy.AUTO_EXTENDED,
        )

    def allocate_sale(self, grant: Grant, quantity_sold: int) -> SaleTaxAllocation:
        """Split the grant's tax between the sold options and those left.

        The per-option rate comes from the tax still outstanding over the
        options still held, not from the original grant-wide rate.
        """
        total_tax = grant.authoritative_tax
        remaining_before = grant.quantity_remaining
        if remaining_before == 0:
            per_option = Decimal("0")
        else:
            per_option = total_tax / Decimal(remaining_before)
        allocated = per_option * Decimal(quantity_sold)
        remaining_tax = max(Decimal("0"), total_tax - allocated)
        return SaleTaxAllocation(
            total_tax=total_tax,
            remaining_before=remaining_before,
            per_option_tax=per_option,
            allocated=allocated,
            remaining_tax=remaining_tax,
        )

    @staticmethod
    def write_back(grant: Grant, new_total_tax: Decimal) -> tuple[Decimal | None, Decimal]:
        """Store a new tax figure in whichever field is authoritative."""
        if grant.tax_amount is not None:
            return new_total_tax, grant.tax_auto_calculated
        return None, new_total_tax
