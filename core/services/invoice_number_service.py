"""
Invoice number allocation.

Numbers come from a per-user, per-prefix counter row in invoice_sequences,
incremented atomically with INSERT ... ON CONFLICT DO UPDATE. Two
concurrent allocations can never see the same value.
"""

import logging
from uuid import UUID

from psycopg2 import errors as pg_errors

from clients.postgres_client import PostgresClient
from core.config import BillingConfig

logger = logging.getLogger(__name__)

_RETRYABLE_ERRORS = (pg_errors.SerializationFailure, pg_errors.DeadlockDetected)


class InvoiceNumberAllocator:
    """
    Hands out invoice numbers like INV-0001, INV-0002.

    Usage:
        numbers = InvoiceNumberAllocator(postgres)
        with user_context(user_id):
            number = numbers.next_invoice_number(user_id, "INV")
    """

    def __init__(self, postgres: PostgresClient, config: BillingConfig | None = None):
        self.postgres = postgres
        self.config = config or BillingConfig()

    def format_number(self, prefix: str, sequence: int) -> str:
        return f"{prefix}-{sequence:0{self.config.invoice_number_padding}d}"

    def _allocate(self, user_id: UUID, prefix: str) -> int:
        value = self.postgres.execute_scalar(
            """
            INSERT INTO invoice_sequences (user_id, prefix, last_value)
            VALUES (%s, %s, 1)
            ON CONFLICT (user_id, prefix)
            DO UPDATE SET last_value = invoice_sequences.last_value + 1
            RETURNING last_value
            """,
            (user_id, prefix)
        )
        if value is None:
            raise RuntimeError(f"Sequence allocation returned nothing for prefix {prefix}")
        return int(value)

    def next_invoice_number(self, user_id: UUID, prefix: str | None = None) -> str:
        """
        Allocate the next invoice number for a user.

        Inside a transaction the counter increment commits or rolls back
        with it, and conflicts propagate so the whole unit fails. Outside a
        transaction serialization failures and deadlocks are retried.

        Args:
            user_id: Owner of the sequence
            prefix: Number prefix, defaults to the configured prefix

        Returns:
            Formatted invoice number

        Raises:
            ValueError: If prefix is blank
        """
        prefix = (prefix or self.config.default_invoice_prefix).strip()
        if not prefix:
            raise ValueError("Invoice number prefix cannot be blank")

        if self.postgres.in_transaction():
            return self.format_number(prefix, self._allocate(user_id, prefix))

        attempts = self.config.number_allocation_attempts
        for attempt in range(1, attempts):
            try:
                return self.format_number(prefix, self._allocate(user_id, prefix))
            except _RETRYABLE_ERRORS as e:
                logger.warning(f"Invoice number allocation conflict (attempt {attempt}): {e}")

        # Last attempt: let the error propagate
        return self.format_number(prefix, self._allocate(user_id, prefix))
