"""Tests for BillingConfig."""

import pytest
from pydantic import ValidationError

from core.config import BillingConfig


class TestBillingConfig:
    """Defaults and validation."""

    def test_defaults(self):
        config = BillingConfig()
        assert config.payment_terms_days == 30
        assert config.default_invoice_prefix == "INV"
        assert config.invoice_number_padding == 4
        assert config.reminder_intervals == [3, 7, 14]
        assert config.delivery_max_attempts == 3

    def test_intervals_sorted_and_deduplicated(self):
        config = BillingConfig(reminder_intervals=[14, 3, 7, 3])
        assert config.reminder_intervals == [3, 7, 14]

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ValidationError):
            BillingConfig(reminder_intervals=[0, 7])

    def test_blank_prefix_rejected(self):
        with pytest.raises(ValidationError):
            BillingConfig(default_invoice_prefix="")

    def test_short_lock_ttl_rejected(self):
        with pytest.raises(ValidationError):
            BillingConfig(job_lock_ttl_seconds=5)
