"""Billing configuration."""

from pydantic import BaseModel, Field, field_validator


class BillingConfig(BaseModel):
    """
    Business settings for invoicing, recurring generation and delivery.

    Durations are in days unless the name says otherwise.
    """

    # Invoices
    payment_terms_days: int = Field(
        default=30,
        description="Days between issue date and due date when a schedule sets none",
        ge=0,
        le=365,
    )
    default_invoice_prefix: str = Field(
        default="INV",
        description="Invoice number prefix when none is given",
        min_length=1,
        max_length=20,
    )
    invoice_number_padding: int = Field(
        default=4,
        description="Zero-padded width of the sequence part (INV-0001)",
        ge=1,
        le=12,
    )
    number_allocation_attempts: int = Field(
        default=5,
        description="Retries for sequence allocation on serialization failure",
        ge=1,
        le=20,
    )

    # Overdue reminders
    reminder_intervals: list[int] = Field(
        default_factory=lambda: [3, 7, 14],
        description="Days past due on which a reminder goes out",
    )

    # Delivery outbox
    delivery_max_attempts: int = Field(
        default=3,
        description="Attempts before a delivery task is marked failed",
        ge=1,
        le=20,
    )
    delivery_batch_size: int = Field(
        default=100,
        description="Delivery tasks processed per run",
        ge=1,
        le=1000,
    )

    # Job locks
    job_lock_ttl_seconds: int = Field(
        default=900,
        description="How long a scheduled job holds its lock",
        ge=30,
    )

    # Application
    app_name: str = Field(
        default="Invoicing",
        description="Application name for emails",
    )

    @field_validator("reminder_intervals")
    @classmethod
    def intervals_positive_and_sorted(cls, v: list[int]) -> list[int]:
        if any(days <= 0 for days in v):
            raise ValueError("Reminder intervals must be positive day counts")
        return sorted(set(v))
