"""
Recurring invoice service.

A recurring invoice is a schedule (frequency, next date, optional end date)
plus a template (client, line items, discount, tax rate, terms) that the
generator job turns into real invoices. Every generation attempt is
recorded in an append-only log.
"""

import logging
from datetime import date, datetime
from typing import Any
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.models import (
    Frequency, GenerationLogEntry, GenerationStatus, LineItemCreate,
    RecurringInvoice, RecurringInvoiceCreate, RecurringInvoiceUpdate, RecurringLineItem,
)
from core.recurrence import next_date
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {
    "frequency", "end_date", "invoice_number_prefix", "tax_rate",
    "notes", "payment_terms", "payment_terms_days"
}


class RecurringInvoiceService:
    """Service for recurring invoice schedules, templates and generation logs."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def _insert_line_items(self, recurring_invoice_id: UUID, items: list[LineItemCreate]) -> None:
        for position, item in enumerate(items):
            self.postgres.execute(
                """
                INSERT INTO recurring_invoice_line_items (
                    id, recurring_invoice_id, description, quantity, rate, sort_order
                ) VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (
                    uuid4(), recurring_invoice_id, item.description,
                    item.quantity, item.rate,
                    position if item.sort_order is None else item.sort_order,
                )
            )

    def create(self, data: RecurringInvoiceCreate) -> RecurringInvoice:
        """
        Create a schedule and its template lines.

        The first invoice is due one period after start_date.

        Raises:
            ValueError: If the client does not exist
        """
        user_id = get_current_user_id()

        with self.postgres.transaction():
            client = self.postgres.execute_single(
                "SELECT id FROM clients WHERE id = %s AND deleted_at IS NULL",
                (data.client_id,)
            )
            if client is None:
                raise ValueError(f"Client {data.client_id} not found")

            now = now_utc()
            row = self.postgres.execute_returning(
                """
                INSERT INTO recurring_invoices (
                    id, user_id, client_id, frequency, start_date, next_invoice_date,
                    end_date, is_active, invoice_number_prefix, currency,
                    discount_type, discount_value, tax_rate, notes, payment_terms,
                    payment_terms_days, created_at, updated_at
                ) VALUES (
                    %(id)s, %(user_id)s, %(client_id)s, %(frequency)s, %(start_date)s,
                    %(next_invoice_date)s, %(end_date)s, TRUE, %(invoice_number_prefix)s,
                    %(currency)s, %(discount_type)s, %(discount_value)s, %(tax_rate)s,
                    %(notes)s, %(payment_terms)s, %(payment_terms_days)s,
                    %(created_at)s, %(updated_at)s
                )
                RETURNING *
                """,
                {
                    "id": uuid4(),
                    "user_id": user_id,
                    "client_id": data.client_id,
                    "frequency": data.frequency.value,
                    "start_date": data.start_date,
                    "next_invoice_date": next_date(data.start_date, data.frequency),
                    "end_date": data.end_date,
                    "invoice_number_prefix": data.invoice_number_prefix,
                    "currency": data.currency,
                    "discount_type": data.discount.type.value if data.discount else None,
                    "discount_value": data.discount.value if data.discount else None,
                    "tax_rate": data.tax_rate,
                    "notes": data.notes,
                    "payment_terms": data.payment_terms,
                    "payment_terms_days": data.payment_terms_days,
                    "created_at": now,
                    "updated_at": now,
                }
            )[0]

            schedule = RecurringInvoice.model_validate(row)
            self._insert_line_items(schedule.id, data.line_items)

            self.audit.log_change(
                entity_type="recurring_invoice",
                entity_id=schedule.id,
                action=AuditAction.CREATE,
                changes={"created": data.model_dump(mode="json", exclude_none=True)}
            )

        return schedule

    def get_by_id(self, recurring_invoice_id: UUID) -> RecurringInvoice | None:
        """Schedule if found and not deleted, None otherwise."""
        row = self.postgres.execute_single(
            "SELECT * FROM recurring_invoices WHERE id = %s AND deleted_at IS NULL",
            (recurring_invoice_id,)
        )

        if row is None:
            return None

        return RecurringInvoice.model_validate(row)

    def list_all(self, active_only: bool = False) -> list[RecurringInvoice]:
        """Schedules ordered by next invoice date."""
        rows = self.postgres.execute(
            """
            SELECT * FROM recurring_invoices
            WHERE deleted_at IS NULL AND (%s = FALSE OR is_active)
            ORDER BY next_invoice_date ASC
            """,
            (active_only,)
        )

        return [RecurringInvoice.model_validate(row) for row in rows]

    def list_line_items(self, recurring_invoice_id: UUID) -> list[RecurringLineItem]:
        """Template lines in display order."""
        rows = self.postgres.execute(
            """
            SELECT * FROM recurring_invoice_line_items
            WHERE recurring_invoice_id = %s
            ORDER BY sort_order ASC
            """,
            (recurring_invoice_id,)
        )

        return [RecurringLineItem.model_validate(row) for row in rows]

    def list_due(self, as_of: date) -> list[RecurringInvoice]:
        """Active schedules whose next invoice date is on or before as_of."""
        rows = self.postgres.execute(
            """
            SELECT * FROM recurring_invoices
            WHERE is_active AND deleted_at IS NULL AND next_invoice_date <= %s
            ORDER BY next_invoice_date ASC, created_at ASC
            """,
            (as_of,)
        )

        return [RecurringInvoice.model_validate(row) for row in rows]

    def update(self, recurring_invoice_id: UUID, data: RecurringInvoiceUpdate) -> RecurringInvoice:
        """
        Update template and schedule fields.

        Raises:
            ValueError: If schedule not found, or the new end date precedes
                the start date
        """
        with self.postgres.transaction():
            current = self.get_by_id(recurring_invoice_id)
            if current is None:
                raise ValueError(f"Recurring invoice {recurring_invoice_id} not found")

            fields: dict[str, Any] = {
                k: v for k, v in data.model_dump(exclude_unset=True).items()
                if k in _UPDATABLE_COLUMNS
            }
            if isinstance(fields.get("frequency"), Frequency):
                fields["frequency"] = fields["frequency"].value
            if data.end_date is not None and data.end_date < current.start_date:
                raise ValueError("end_date cannot be before start_date")
            if data.clear_discount:
                fields["discount_type"] = None
                fields["discount_value"] = None
            elif data.discount is not None:
                fields["discount_type"] = data.discount.type.value
                fields["discount_value"] = data.discount.value

            if data.line_items is not None:
                self.postgres.execute(
                    "DELETE FROM recurring_invoice_line_items WHERE recurring_invoice_id = %s",
                    (recurring_invoice_id,)
                )
                self._insert_line_items(recurring_invoice_id, data.line_items)

            if not fields and data.line_items is None:
                return current

            updated = self._write_update(recurring_invoice_id, fields)

            changes = compute_changes(
                current.model_dump(mode="json"),
                updated.model_dump(mode="json")
            )
            if data.line_items is not None:
                changes["line_items"] = {
                    "old": None,
                    "new": [item.model_dump(mode="json") for item in data.line_items],
                }
            if changes:
                self.audit.log_change(
                    entity_type="recurring_invoice",
                    entity_id=recurring_invoice_id,
                    action=AuditAction.UPDATE,
                    changes=changes
                )

        return updated

    def _write_update(self, recurring_invoice_id: UUID, fields: dict[str, Any]) -> RecurringInvoice:
        set_parts = [f"{field} = %({field})s" for field in fields]
        set_parts.append("updated_at = %(updated_at)s")

        row = self.postgres.execute_returning(
            f"""
            UPDATE recurring_invoices
            SET {', '.join(set_parts)}
            WHERE id = %(id)s AND deleted_at IS NULL
            RETURNING *
            """,
            {**fields, "updated_at": now_utc(), "id": recurring_invoice_id}
        )[0]
        return RecurringInvoice.model_validate(row)

    def set_active(self, recurring_invoice_id: UUID, is_active: bool) -> RecurringInvoice:
        """
        Pause or resume a schedule.

        Raises:
            ValueError: If schedule not found
        """
        current = self.get_by_id(recurring_invoice_id)
        if current is None:
            raise ValueError(f"Recurring invoice {recurring_invoice_id} not found")
        if current.is_active == is_active:
            return current

        updated = self._write_update(recurring_invoice_id, {"is_active": is_active})

        self.audit.log_change(
            entity_type="recurring_invoice",
            entity_id=recurring_invoice_id,
            action=AuditAction.UPDATE,
            changes={"is_active": {"old": current.is_active, "new": is_active}}
        )

        return updated

    def delete(self, recurring_invoice_id: UUID) -> bool:
        """
        Soft delete and deactivate a schedule. Generated invoices are kept.

        Returns:
            True if deleted, False if not found
        """
        current = self.get_by_id(recurring_invoice_id)
        if current is None:
            return False

        now = now_utc()
        self.postgres.execute(
            """
            UPDATE recurring_invoices
            SET is_active = FALSE, deleted_at = %s, updated_at = %s
            WHERE id = %s
            """,
            (now, now, recurring_invoice_id)
        )

        self.audit.log_change(
            entity_type="recurring_invoice",
            entity_id=recurring_invoice_id,
            action=AuditAction.DELETE,
            changes={"deleted": current.model_dump(mode="json")}
        )

        return True

    def advance(
        self,
        recurring_invoice_id: UUID,
        next_invoice_date: date,
        generated_at: datetime
    ) -> RecurringInvoice:
        """Move a schedule to its next date after a successful generation."""
        return self._write_update(
            recurring_invoice_id,
            {"next_invoice_date": next_invoice_date, "last_generated_at": generated_at}
        )

    def deactivate(self, recurring_invoice_id: UUID, generated_at: datetime) -> RecurringInvoice:
        """
        End a schedule after its final invoice.

        next_invoice_date is left as-is; the schedule is inactive so it is
        never due again.
        """
        return self._write_update(
            recurring_invoice_id,
            {"is_active": False, "last_generated_at": generated_at}
        )

    def log_generation(
        self,
        recurring_invoice_id: UUID,
        status: GenerationStatus,
        generated_invoice_id: UUID | None = None,
        error_message: str | None = None,
        user_id: UUID | None = None,
    ) -> GenerationLogEntry:
        """Append a generation attempt to the log."""
        if user_id is None:
            user_id = get_current_user_id()

        row = self.postgres.execute_returning(
            """
            INSERT INTO invoice_generation_logs (
                id, user_id, recurring_invoice_id, generated_invoice_id,
                status, error_message, created_at
            ) VALUES (
                %(id)s, %(user_id)s, %(recurring_invoice_id)s, %(generated_invoice_id)s,
                %(status)s, %(error_message)s, %(created_at)s
            )
            RETURNING *
            """,
            {
                "id": uuid4(),
                "user_id": user_id,
                "recurring_invoice_id": recurring_invoice_id,
                "generated_invoice_id": generated_invoice_id,
                "status": status.value,
                "error_message": error_message,
                "created_at": now_utc(),
            }
        )[0]

        return GenerationLogEntry.model_validate(row)

    def list_generation_logs(self, recurring_invoice_id: UUID, limit: int = 50) -> list[GenerationLogEntry]:
        """Generation attempts for a schedule, newest first."""
        rows = self.postgres.execute(
            """
            SELECT * FROM invoice_generation_logs
            WHERE recurring_invoice_id = %s
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (recurring_invoice_id, limit)
        )

        return [GenerationLogEntry.model_validate(row) for row in rows]
