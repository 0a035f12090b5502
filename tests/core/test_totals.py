"""Tests for core/totals.py - invoice financial computation."""

import itertools
import logging

import pytest
from decimal import Decimal

from core.models import DiscountSpec, DiscountType, LineItemCreate, RecipientTaxStatus
from core.totals import (
    compose, discount_amount, is_reverse_charge, line_amount, subtotal, tax_amount,
)

STANDARD = RecipientTaxStatus(vat_number=None, tax_exempt=False)
REVERSE_CHARGE = RecipientTaxStatus(vat_number="FR123", tax_exempt=True)


def pct(value) -> DiscountSpec:
    return DiscountSpec(type=DiscountType.PERCENTAGE, value=Decimal(str(value)))


def fixed(value) -> DiscountSpec:
    return DiscountSpec(type=DiscountType.FIXED, value=Decimal(str(value)))


class TestLineAmount:
    """Tests for line_amount()."""

    def test_multiplies_and_rounds(self):
        assert line_amount(Decimal("3"), Decimal("0.335")) == Decimal("1.01")

    def test_crypto_precision(self):
        assert line_amount("0.5", "0.000000015", 8) == Decimal("0.00000001")

    def test_negative_quantity_raises(self):
        with pytest.raises(ValueError, match="Quantity"):
            line_amount(-1, 10)

    def test_negative_rate_raises(self):
        with pytest.raises(ValueError, match="Rate"):
            line_amount(1, -10)


class TestSubtotal:
    """Tests for subtotal()."""

    def test_empty_list_is_zero(self):
        assert subtotal([]) == Decimal("0.00")

    def test_accepts_dicts_and_models(self):
        items = [
            {"quantity": 2, "rate": 100},
            LineItemCreate(description="Hosting", quantity=Decimal("1.5"), rate=Decimal("50")),
        ]
        assert subtotal(items) == Decimal("275.00")

    def test_sums_rounded_line_amounts(self):
        """Each line is rounded before summing: 3 x 0.33, not round(0.999)."""
        items = [{"quantity": 1, "rate": "0.333"}] * 3
        assert subtotal(items) == Decimal("0.99")

    def test_does_not_modify_input(self):
        items = [{"quantity": 2, "rate": 10}, {"quantity": 1, "rate": 5}]
        snapshot = [dict(item) for item in items]
        subtotal(items)
        assert items == snapshot

    def test_order_independent(self):
        items = [
            {"quantity": 3, "rate": "19.99"},
            {"quantity": "0.5", "rate": "120"},
            {"quantity": 7, "rate": "0.15"},
        ]
        results = {subtotal(list(p)) for p in itertools.permutations(items)}
        assert len(results) == 1

    @pytest.mark.parametrize("items", [None, "items", {"quantity": 1, "rate": 1}])
    def test_non_list_raises_type_error(self, items):
        with pytest.raises(TypeError):
            subtotal(items)

    def test_missing_field_raises(self):
        with pytest.raises(ValueError, match="rate"):
            subtotal([{"quantity": 1}])


class TestDiscountAmount:
    """Tests for discount_amount()."""

    def test_none_is_zero(self):
        assert discount_amount(Decimal("100"), None) == Decimal("0.00")

    def test_percentage(self):
        assert discount_amount(Decimal("275"), pct(15)) == Decimal("41.25")

    def test_fixed(self):
        assert discount_amount(Decimal("275"), fixed(25)) == Decimal("25.00")

    def test_fixed_larger_than_subtotal_clamps(self):
        assert discount_amount(Decimal("1000"), fixed(1500)) == Decimal("1000.00")

    def test_percentage_over_hundred_clamps(self):
        assert discount_amount(Decimal("80"), pct(150)) == Decimal("80.00")

    def test_zero_subtotal_gives_zero(self):
        assert discount_amount(Decimal("0"), fixed(50)) == Decimal("0.00")

    def test_negative_value_raises(self):
        spec = DiscountSpec.model_construct(type=DiscountType.FIXED, value=Decimal("-5"))
        with pytest.raises(ValueError, match="Discount value"):
            discount_amount(Decimal("100"), spec)

    def test_negative_value_raises_even_on_zero_subtotal(self):
        spec = DiscountSpec.model_construct(type=DiscountType.FIXED, value=Decimal("-5"))
        with pytest.raises(ValueError):
            discount_amount(Decimal("0"), spec)


class TestReverseCharge:
    """Reverse charge requires both a VAT number and tax exemption."""

    @pytest.mark.parametrize(
        "vat_number, tax_exempt, expected",
        [
            ("FR123", True, True),
            ("FR123", False, False),
            (None, True, False),
            ("   ", True, False),
            (None, False, False),
        ],
    )
    def test_matrix(self, vat_number, tax_exempt, expected):
        recipient = RecipientTaxStatus(vat_number=vat_number, tax_exempt=tax_exempt)
        assert is_reverse_charge(recipient) is expected

    def test_no_recipient_is_standard(self):
        assert is_reverse_charge(None) is False

    def test_reverse_charge_tax_is_zero(self):
        assert tax_amount(Decimal("500"), Decimal("20"), REVERSE_CHARGE) == Decimal("0.00")

    def test_vat_number_alone_is_taxed(self):
        recipient = RecipientTaxStatus(vat_number="FR123", tax_exempt=False)
        assert tax_amount(Decimal("500"), Decimal("20"), recipient) == Decimal("100.00")


class TestTaxAmount:
    """Tests for tax_amount()."""

    def test_rounds_half_up(self):
        assert tax_amount(Decimal("233.75"), Decimal("19"), STANDARD) == Decimal("44.41")

    def test_zero_base(self):
        assert tax_amount(Decimal("0"), Decimal("19"), STANDARD) == Decimal("0.00")

    def test_negative_rate_raises(self):
        with pytest.raises(ValueError, match="Tax rate"):
            tax_amount(Decimal("10"), Decimal("-1"), STANDARD)


class TestCompose:
    """End-to-end invoice totals."""

    def test_percentage_discount_with_tax(self):
        items = [{"quantity": 2, "rate": 100}, {"quantity": "1.5", "rate": 50}]
        totals = compose(items, pct(15), Decimal("19"), STANDARD)

        assert totals.subtotal == Decimal("275.00")
        assert totals.discount_amount == Decimal("41.25")
        assert totals.amount_after_discount == Decimal("233.75")
        assert totals.tax_amount == Decimal("44.41")
        assert totals.total == Decimal("278.16")
        assert totals.amount_due == Decimal("278.16")
        assert totals.reverse_charge is False

    def test_fixed_discount_over_subtotal(self):
        items = [{"quantity": 1, "rate": 1000}]
        totals = compose(items, fixed(1500), Decimal("19"), STANDARD)

        assert totals.discount_amount == Decimal("1000.00")
        assert totals.amount_after_discount == Decimal("0.00")
        assert totals.tax_amount == Decimal("0.00")
        assert totals.total == Decimal("0.00")

    def test_reverse_charge_total_equals_after_discount(self):
        items = [{"quantity": 1, "rate": 500}]
        totals = compose(items, None, Decimal("20"), REVERSE_CHARGE)

        assert totals.tax_amount == Decimal("0.00")
        assert totals.total == totals.amount_after_discount == Decimal("500.00")
        assert totals.reverse_charge is True

    def test_identities_hold(self):
        items = [{"quantity": "3.25", "rate": "17.99"}, {"quantity": 4, "rate": "0.07"}]
        totals = compose(items, pct("12.5"), Decimal("7.7"), STANDARD, amount_paid=Decimal("10"))

        assert totals.amount_after_discount == totals.subtotal - totals.discount_amount
        assert totals.total == totals.amount_after_discount + totals.tax_amount
        assert totals.amount_due == totals.total - Decimal("10")
        assert Decimal("0") <= totals.discount_amount <= totals.subtotal

    def test_deterministic(self):
        items = [{"quantity": 2, "rate": "33.333"}]
        first = compose(items, pct(10), Decimal("19"), STANDARD)
        second = compose(items, pct(10), Decimal("19"), STANDARD)
        assert first == second

    def test_overpayment_gives_negative_due_and_warns(self, caplog):
        items = [{"quantity": 1, "rate": 100}]
        with caplog.at_level(logging.WARNING, logger="core.totals"):
            totals = compose(items, None, 0, STANDARD, amount_paid=Decimal("120"))

        assert totals.amount_due == Decimal("-20.00")
        assert "Overpayment" in caplog.text

    def test_empty_items(self):
        totals = compose([], fixed(10), Decimal("19"), STANDARD)
        assert totals.total == Decimal("0.00")
        assert totals.discount_amount == Decimal("0.00")

    def test_crypto_precision(self):
        items = [{"quantity": "0.5", "rate": "0.123456789"}]
        totals = compose(items, None, 0, STANDARD, decimals=8)
        assert totals.subtotal == Decimal("0.06172839")

    def test_negative_amount_paid_raises(self):
        with pytest.raises(ValueError, match="Amount paid"):
            compose([{"quantity": 1, "rate": 1}], None, 0, STANDARD, amount_paid=-1)

    def test_items_not_a_list_raises(self):
        with pytest.raises(TypeError):
            compose(None, None, 0, STANDARD)
