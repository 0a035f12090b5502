"""Invoice domain models.

Amounts are Decimals in the invoice currency, rounded to its precision
(2 places fiat, 8 places crypto). Tax rate is a percent (19 = 19%).
Derived amounts (subtotal through total) are never accepted from callers;
the service recomputes them from line items on every write.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from core.models.line_item import LineItemCreate
from core.models.totals import DiscountSpec, DiscountType


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    SENT = "sent"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELED = "canceled"


class PaymentStatus(str, Enum):
    """Payment position derived from total and amount paid."""

    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


# Statuses an invoice can still be edited or paid in
OPEN_STATUSES = (InvoiceStatus.DRAFT, InvoiceStatus.SENT, InvoiceStatus.PARTIAL, InvoiceStatus.OVERDUE)


class InvoiceCreate(BaseModel):
    """Data required to create an invoice."""

    client_id: UUID
    line_items: list[LineItemCreate] = Field(..., min_length=1)
    discount: DiscountSpec | None = None
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    currency: str = Field("USD", min_length=3, max_length=10)
    notes: str | None = Field(None, max_length=5000)
    payment_terms: str | None = Field(None, max_length=500)
    status: InvoiceStatus = InvoiceStatus.DRAFT
    issue_date: date
    due_date: date

    @model_validator(mode="after")
    def check_dates_and_status(self) -> "InvoiceCreate":
        """Due date may not precede issue date; new invoices are draft or sent."""
        if self.due_date < self.issue_date:
            raise ValueError("due_date cannot be before issue_date")
        if self.status not in (InvoiceStatus.DRAFT, InvoiceStatus.SENT):
            raise ValueError("New invoices must be draft or sent")
        self.currency = self.currency.upper()
        return self


class InvoiceUpdate(BaseModel):
    """
    Data that can be updated on an invoice. All fields optional.

    line_items, when given, replaces the full set of line items.
    clear_discount removes an existing discount.
    """

    client_id: UUID | None = None
    line_items: list[LineItemCreate] | None = Field(None, min_length=1)
    discount: DiscountSpec | None = None
    clear_discount: bool = False
    tax_rate: Decimal | None = Field(None, ge=0, le=100)
    notes: str | None = Field(None, max_length=5000)
    payment_terms: str | None = Field(None, max_length=500)
    issue_date: date | None = None
    due_date: date | None = None


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    id: UUID
    user_id: UUID
    client_id: UUID
    recurring_invoice_id: UUID | None = None
    invoice_number: str
    status: InvoiceStatus
    currency: str
    subtotal: Decimal
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = None
    discount_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    amount_paid: Decimal
    reverse_charge: bool = False
    notes: str | None = None
    payment_terms: str | None = None
    issue_date: date
    due_date: date
    sent_at: datetime | None = None
    paid_at: datetime | None = None
    canceled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def amount_due(self) -> Decimal:
        """Remaining balance. Negative when overpaid."""
        return self.total - self.amount_paid

    @property
    def discount(self) -> DiscountSpec | None:
        if self.discount_type is None or self.discount_value is None:
            return None
        return DiscountSpec(type=self.discount_type, value=self.discount_value)

    @property
    def is_paid(self) -> bool:
        """Whether invoice is fully paid."""
        return self.status == InvoiceStatus.PAID
