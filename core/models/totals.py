"""Value types consumed and produced by the invoice calculators."""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class DiscountType(str, Enum):
    """How a discount value is interpreted."""

    PERCENTAGE = "percentage"  # value is a percent of the subtotal
    FIXED = "fixed"  # value is an amount in invoice currency


class DiscountSpec(BaseModel):
    """Discount applied to an invoice subtotal."""

    type: DiscountType
    value: Decimal = Field(..., ge=0)

    model_config = {"frozen": True}


class RecipientTaxStatus(BaseModel):
    """Tax-relevant facts about the invoice recipient."""

    vat_number: str | None = None
    tax_exempt: bool = False

    model_config = {"frozen": True, "from_attributes": True}

    @property
    def reverse_charge(self) -> bool:
        """
        VAT reverse charge applies only when both a VAT number is present
        and the recipient is tax exempt. Either one alone is not enough.
        """
        has_vat_number = bool(self.vat_number and self.vat_number.strip())
        return has_vat_number and self.tax_exempt


class InvoiceTotals(BaseModel):
    """
    Derived invoice amounts.

    Always produced by core.totals.compose from the full set of inputs and
    never patched afterwards. amount_due is negative when overpaid.
    """

    subtotal: Decimal
    discount_amount: Decimal
    amount_after_discount: Decimal
    tax_amount: Decimal
    total: Decimal
    amount_due: Decimal
    reverse_charge: bool

    model_config = {"frozen": True}
