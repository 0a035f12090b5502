"""Invoice line item domain models.

Quantity and rate may carry up to 8 decimal places (crypto invoices).
amount is always quantity * rate rounded to the invoice currency, and is
recomputed by the service whenever quantity or rate change.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class LineItemCreate(BaseModel):
    """Data required to create a line item (or a recurring template line)."""

    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(Decimal("1"), ge=0, decimal_places=8)
    rate: Decimal = Field(..., ge=0, decimal_places=8)
    sort_order: int | None = Field(None, ge=0)


class LineItemUpdate(BaseModel):
    """Data that can be updated on a line item. All fields optional."""

    description: str | None = Field(None, min_length=1, max_length=500)
    quantity: Decimal | None = Field(None, ge=0, decimal_places=8)
    rate: Decimal | None = Field(None, ge=0, decimal_places=8)
    sort_order: int | None = Field(None, ge=0)


class LineItem(BaseModel):
    """Full line item entity as stored."""

    id: UUID
    user_id: UUID
    invoice_id: UUID
    description: str
    quantity: Decimal
    rate: Decimal
    amount: Decimal
    sort_order: int
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}
