"""
Domain events for invoicing.

Immutable event objects published after a state change has committed.
A service publishes what happened; handlers (delivery outbox) react without
the publisher knowing who's listening.

Events carry the full domain objects so handlers don't need to re-fetch
state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class BillingEvent:
    """Base class for all invoicing domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class InvoiceEvent(BillingEvent):
    """Events related to invoice lifecycle."""
    pass


@dataclass(frozen=True)
class InvoiceSent(InvoiceEvent):
    """Invoice moved from draft to sent."""
    invoice: Any = None  # Invoice - using Any to avoid circular import

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceSent":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoicePaid(InvoiceEvent):
    """Invoice was fully paid."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoicePaid":
        return cls(invoice=invoice)


# =============================================================================
# RECURRING EVENTS
# =============================================================================


@dataclass(frozen=True)
class RecurringInvoiceGenerated(InvoiceEvent):
    """A schedule produced an invoice and the generation committed."""
    invoice: Any = None
    schedule: Any = None
    client: Any = None

    @classmethod
    def create(cls, invoice: Any, schedule: Any, client: Any) -> "RecurringInvoiceGenerated":
        return cls(invoice=invoice, schedule=schedule, client=client)
