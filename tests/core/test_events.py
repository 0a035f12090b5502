"""Tests for domain event models."""

from dataclasses import FrozenInstanceError
from datetime import datetime, timezone

import pytest

from core.events import BillingEvent, InvoiceEvent, InvoicePaid, InvoiceSent, RecurringInvoiceGenerated
from core.models import Client, Invoice, RecurringInvoice


@pytest.fixture
def _invoice(make_invoice_row):
    return Invoice.model_validate(make_invoice_row())


class TestBillingEvent:
    """Base event fields."""

    def test_event_id_is_unique(self, _invoice):
        first = InvoiceSent.create(invoice=_invoice)
        second = InvoiceSent.create(invoice=_invoice)
        assert first.event_id != second.event_id

    def test_occurred_at_is_utc(self, _invoice):
        event = InvoicePaid.create(invoice=_invoice)
        assert isinstance(event.occurred_at, datetime)
        assert event.occurred_at.tzinfo == timezone.utc

    def test_events_are_frozen(self, _invoice):
        event = InvoiceSent.create(invoice=_invoice)
        with pytest.raises(FrozenInstanceError):
            event.invoice = None

    def test_hierarchy(self, _invoice):
        event = InvoiceSent.create(invoice=_invoice)
        assert isinstance(event, InvoiceEvent)
        assert isinstance(event, BillingEvent)


class TestRecurringInvoiceGenerated:
    """Generation event carries invoice, schedule and client."""

    def test_create(self, _invoice, make_schedule_row, make_client_row):
        schedule = RecurringInvoice.model_validate(make_schedule_row())
        client = Client.model_validate(make_client_row())

        event = RecurringInvoiceGenerated.create(invoice=_invoice, schedule=schedule, client=client)

        assert event.invoice is _invoice
        assert event.schedule is schedule
        assert event.client is client
