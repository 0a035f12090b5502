"""
Invoice financial computation.

Pure functions, no I/O. Invoice create and update, and recurring
generation, all go through compose() so the same inputs always persist the
same totals.

Rounding happens at each money boundary (line amount, discount, tax) with
core.money.round_money; sums of rounded values need no further rounding.
"""

import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Sequence

from core.models.totals import DiscountSpec, DiscountType, InvoiceTotals, RecipientTaxStatus
from core.money import HUNDRED, ZERO, round_money, to_decimal

logger = logging.getLogger(__name__)


def _field(item: Any, name: str) -> Any:
    """Read a line item field from a model, dataclass or plain dict."""
    if isinstance(item, Mapping):
        if name not in item:
            raise ValueError(f"Line item is missing '{name}'")
        return item[name]
    if not hasattr(item, name):
        raise ValueError(f"Line item is missing '{name}'")
    return getattr(item, name)


def _non_negative(value: Any, label: str) -> Decimal:
    amount = to_decimal(value)
    if amount < 0:
        raise ValueError(f"{label} cannot be negative, got {amount}")
    return amount


def line_amount(quantity: Any, rate: Any, decimals: int = 2) -> Decimal:
    """
    quantity * rate, rounded to the currency precision.

    Raises:
        ValueError: If quantity or rate is negative or non-numeric.
    """
    qty = _non_negative(quantity, "Quantity")
    unit_rate = _non_negative(rate, "Rate")
    return round_money(qty * unit_rate, decimals)


def subtotal(items: Sequence[Any], decimals: int = 2) -> Decimal:
    """
    Sum of line amounts. Empty list is 0.

    Items are anything with quantity and rate (models or dicts); the list
    is neither reordered nor modified.

    Raises:
        TypeError: If items is not a list or tuple.
        ValueError: If any quantity or rate is negative or non-numeric.
    """
    if not isinstance(items, (list, tuple)):
        raise TypeError(f"Line items must be a list, got {type(items).__name__}")

    total = ZERO
    for item in items:
        total += line_amount(_field(item, "quantity"), _field(item, "rate"), decimals)
    return round_money(total, decimals)


def discount_amount(subtotal_amount: Any, spec: DiscountSpec | None, decimals: int = 2) -> Decimal:
    """
    Discount for a subtotal, clamped to [0, subtotal].

    Percentage discounts are subtotal * value / 100; fixed discounts are the
    value itself. A fixed discount larger than the subtotal is clamped, not
    rejected.

    Raises:
        ValueError: If the discount value or subtotal is negative.
    """
    base = _non_negative(subtotal_amount, "Subtotal")
    if spec is None:
        return round_money(ZERO, decimals)

    value = _non_negative(spec.value, "Discount value")
    if base == 0:
        return round_money(ZERO, decimals)

    if spec.type == DiscountType.PERCENTAGE:
        raw = base * value / HUNDRED
    elif spec.type == DiscountType.FIXED:
        raw = value
    else:
        raise ValueError(f"Unknown discount type: {spec.type}")

    amount = round_money(raw, decimals)
    return min(max(amount, ZERO), round_money(base, decimals))


def is_reverse_charge(recipient: RecipientTaxStatus | None) -> bool:
    """Reverse charge needs both a VAT number and the tax-exempt flag."""
    return recipient is not None and recipient.reverse_charge


def tax_amount(
    amount_after_discount: Any,
    tax_rate: Any,
    recipient: RecipientTaxStatus | None,
    decimals: int = 2,
) -> Decimal:
    """
    Tax on the discounted amount, or 0 under reverse charge.

    Raises:
        ValueError: If the rate or amount is negative.
    """
    base = _non_negative(amount_after_discount, "Taxable amount")
    rate = _non_negative(tax_rate, "Tax rate")

    if is_reverse_charge(recipient):
        return round_money(ZERO, decimals)

    return round_money(base * rate / HUNDRED, decimals)


def compose(
    items: Sequence[Any],
    discount: DiscountSpec | None,
    tax_rate: Any,
    recipient: RecipientTaxStatus | None,
    amount_paid: Any = 0,
    decimals: int = 2,
) -> InvoiceTotals:
    """
    Compute every derived invoice amount from scratch.

    Deterministic: identical inputs give identical totals, so create and
    update can both recompute instead of patching.

    Args:
        items: Line items (quantity, rate)
        discount: Discount spec or None
        tax_rate: Percent, e.g. 19 for 19%
        recipient: Recipient tax status; None means standard tax
        amount_paid: Payments received so far
        decimals: Currency precision (see core.money.decimals_for_currency)

    Returns:
        InvoiceTotals. amount_due is negative when overpaid.

    Raises:
        TypeError: If items is not a list or tuple.
        ValueError: For negative or non-numeric inputs.
    """
    sub = subtotal(items, decimals)
    disc = discount_amount(sub, discount, decimals)
    after = sub - disc
    tax = tax_amount(after, tax_rate, recipient, decimals)
    total = after + tax
    paid = _non_negative(amount_paid, "Amount paid")
    due = total - round_money(paid, decimals)

    if due < 0:
        logger.warning(f"Overpayment: paid {paid} against total {total}")

    return InvoiceTotals(
        subtotal=sub,
        discount_amount=disc,
        amount_after_discount=after,
        tax_amount=tax,
        total=total,
        amount_due=due,
        reverse_charge=is_reverse_charge(recipient),
    )
