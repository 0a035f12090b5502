"""Invoice delivery (outbox) domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class DeliveryStatus(str, Enum):
    """Delivery task status."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"  # Gave up after max attempts
    SKIPPED = "skipped"  # Precondition failed - no client email, invoice canceled


class DeliveryTask(BaseModel):
    """
    One queued invoice delivery (PDF + email).

    Enqueued after the invoice commits. Failures are recorded here and never
    on the invoice or its generation log.
    """

    id: UUID
    user_id: UUID
    invoice_id: UUID
    status: DeliveryStatus
    attempts: int = 0
    last_error: str | None = None
    sent_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
