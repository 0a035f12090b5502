"""Recurring invoice (schedule + template) domain models."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from core.models.line_item import LineItemCreate
from core.models.totals import DiscountSpec, DiscountType


class Frequency(str, Enum):
    """How often a schedule produces an invoice."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class GenerationStatus(str, Enum):
    """Outcome of one generation attempt."""

    SUCCESS = "success"
    FAILED = "failed"


class RecurringInvoiceCreate(BaseModel):
    """Data required to create a recurring invoice schedule."""

    client_id: UUID
    frequency: Frequency
    start_date: date
    end_date: date | None = None
    line_items: list[LineItemCreate] = Field(..., min_length=1)
    invoice_number_prefix: str = Field("INV", min_length=1, max_length=20)
    currency: str = Field("USD", min_length=3, max_length=10)
    discount: DiscountSpec | None = None
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    notes: str | None = Field(None, max_length=5000)
    payment_terms: str | None = Field(None, max_length=500)
    payment_terms_days: int | None = Field(None, ge=0, le=365)

    @model_validator(mode="after")
    def end_after_start(self) -> "RecurringInvoiceCreate":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        self.currency = self.currency.upper()
        return self


class RecurringInvoiceUpdate(BaseModel):
    """
    Data that can be updated on a schedule. All fields optional.

    line_items, when given, replaces the template lines. Changes apply to
    invoices generated from now on; already generated invoices are untouched.
    """

    frequency: Frequency | None = None
    end_date: date | None = None
    line_items: list[LineItemCreate] | None = Field(None, min_length=1)
    invoice_number_prefix: str | None = Field(None, min_length=1, max_length=20)
    discount: DiscountSpec | None = None
    clear_discount: bool = False
    tax_rate: Decimal | None = Field(None, ge=0, le=100)
    notes: str | None = Field(None, max_length=5000)
    payment_terms: str | None = Field(None, max_length=500)
    payment_terms_days: int | None = Field(None, ge=0, le=365)


class RecurringInvoice(BaseModel):
    """Full recurring schedule entity as stored."""

    id: UUID
    user_id: UUID
    client_id: UUID
    frequency: Frequency
    start_date: date
    next_invoice_date: date
    end_date: date | None = None
    is_active: bool = True
    last_generated_at: datetime | None = None
    invoice_number_prefix: str
    currency: str
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = None
    tax_rate: Decimal
    notes: str | None = None
    payment_terms: str | None = None
    payment_terms_days: int | None = None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def discount(self) -> DiscountSpec | None:
        if self.discount_type is None or self.discount_value is None:
            return None
        return DiscountSpec(type=self.discount_type, value=self.discount_value)


class RecurringLineItem(BaseModel):
    """A template line copied onto every generated invoice."""

    id: UUID
    recurring_invoice_id: UUID
    description: str
    quantity: Decimal
    rate: Decimal
    sort_order: int

    model_config = {"from_attributes": True}

    def to_create(self) -> LineItemCreate:
        return LineItemCreate(
            description=self.description,
            quantity=self.quantity,
            rate=self.rate,
            sort_order=self.sort_order,
        )


class GenerationLogEntry(BaseModel):
    """One generation attempt. Append-only."""

    id: UUID
    user_id: UUID
    recurring_invoice_id: UUID
    generated_invoice_id: UUID | None = None
    status: GenerationStatus
    error_message: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
