"""Overdue reminder domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator


DEFAULT_SUBJECT = "Payment reminder: invoice {invoice_number} is {days_overdue} days overdue"

DEFAULT_TEMPLATE = (
    "Hello {client_name},\n\n"
    "This is a friendly reminder that invoice {invoice_number} for "
    "{amount_due} was due on {due_date} and is now {days_overdue} days overdue.\n\n"
    "If you have already paid, please disregard this message.\n\n"
    "Thank you,\n{sender_name}"
)


class ReminderStatus(str, Enum):
    """Reminder send outcome."""

    SENT = "sent"
    FAILED = "failed"


class ReminderSettings(BaseModel):
    """Per-user reminder settings. Defaults apply when a user has none stored."""

    enabled: bool = True
    intervals: list[int] = Field(default_factory=lambda: [3, 7, 14])
    email_subject: str = Field(DEFAULT_SUBJECT, max_length=255)
    email_template: str = Field(DEFAULT_TEMPLATE, max_length=10000)
    cc_email: EmailStr | None = None

    model_config = {"from_attributes": True}

    @field_validator("intervals")
    @classmethod
    def positive_intervals(cls, v: list[int]) -> list[int]:
        if any(days <= 0 for days in v):
            raise ValueError("Reminder intervals must be positive day counts")
        return sorted(set(v))


class ReminderLog(BaseModel):
    """One reminder attempt. Append-only."""

    id: UUID
    user_id: UUID
    invoice_id: UUID
    days_overdue: int
    recipient_email: str
    status: ReminderStatus
    error_message: str | None = None
    sent_at: datetime

    model_config = {"from_attributes": True}
