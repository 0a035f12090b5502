"""
Invoice service for billing and payments.

Every write that touches line items, discount, tax rate or client
recomputes all totals from scratch with core.totals.compose. Stored totals
are never patched incrementally.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import BillingConfig
from core.event_bus import EventBus
from core.events import InvoiceSent, InvoicePaid
from core.models import (
    Client, Invoice, InvoiceCreate, InvoiceStatus, InvoiceUpdate, LineItem,
    LineItemUpdate, PaymentStatus,
)
from core.money import ZERO, decimals_for_currency, round_money, to_decimal
from core.services.client_service import ClientService
from core.services.invoice_number_service import InvoiceNumberAllocator
from core.services.line_item_service import LineItemService
from core.totals import compose
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class InvoiceService:
    """Service for invoice operations."""

    def __init__(
        self,
        postgres: PostgresClient,
        audit: AuditLogger,
        event_bus: EventBus,
        line_items: LineItemService,
        clients: ClientService,
        numbers: InvoiceNumberAllocator,
        config: BillingConfig | None = None,
    ):
        self.postgres = postgres
        self.audit = audit
        self.event_bus = event_bus
        self.line_items = line_items
        self.clients = clients
        self.numbers = numbers
        self.config = config or BillingConfig()

    def _require_client(self, client_id: UUID) -> Client:
        client = self.clients.get_by_id(client_id)
        if client is None:
            raise ValueError(f"Client {client_id} not found")
        return client

    def _require_editable(self, invoice_id: UUID) -> Invoice:
        current = self.get_by_id(invoice_id)
        if current is None:
            raise ValueError(f"Invoice {invoice_id} not found")
        if current.status == InvoiceStatus.CANCELED:
            raise ValueError(f"Invoice {invoice_id} is canceled")
        if current.status == InvoiceStatus.PAID:
            raise ValueError(f"Invoice {invoice_id} is paid and cannot be changed")
        return current

    def create(
        self,
        data: InvoiceCreate,
        number_prefix: str | None = None,
        recurring_invoice_id: UUID | None = None,
    ) -> Invoice:
        """
        Create an invoice with its line items.

        Totals, the invoice number, the invoice row and its line items are
        written in one transaction. Joins the caller's transaction when one
        is open (recurring generation). Publishes nothing: callers publish
        after their own commit.

        Args:
            data: Invoice creation data
            number_prefix: Invoice number prefix (defaults to configured prefix)
            recurring_invoice_id: Schedule that produced this invoice, if any

        Returns:
            Created invoice

        Raises:
            ValueError: If client not found
        """
        user_id = get_current_user_id()
        decimals = decimals_for_currency(data.currency)

        with self.postgres.transaction():
            client = self._require_client(data.client_id)
            totals = compose(
                data.line_items, data.discount, data.tax_rate, client.tax_status,
                amount_paid=ZERO, decimals=decimals,
            )
            invoice_number = self.numbers.next_invoice_number(user_id, number_prefix)
            now = now_utc()

            row = self.postgres.execute_returning(
                """
                INSERT INTO invoices (
                    id, user_id, client_id, recurring_invoice_id, invoice_number, status,
                    currency, subtotal, discount_type, discount_value, discount_amount,
                    tax_rate, tax_amount, total, amount_paid, reverse_charge,
                    notes, payment_terms, issue_date, due_date, sent_at,
                    created_at, updated_at
                ) VALUES (
                    %(id)s, %(user_id)s, %(client_id)s, %(recurring_invoice_id)s,
                    %(invoice_number)s, %(status)s,
                    %(currency)s, %(subtotal)s, %(discount_type)s, %(discount_value)s,
                    %(discount_amount)s,
                    %(tax_rate)s, %(tax_amount)s, %(total)s, %(amount_paid)s, %(reverse_charge)s,
                    %(notes)s, %(payment_terms)s, %(issue_date)s, %(due_date)s, %(sent_at)s,
                    %(created_at)s, %(updated_at)s
                )
                RETURNING *
                """,
                {
                    "id": uuid4(),
                    "user_id": user_id,
                    "client_id": data.client_id,
                    "recurring_invoice_id": recurring_invoice_id,
                    "invoice_number": invoice_number,
                    "status": data.status.value,
                    "currency": data.currency,
                    "subtotal": totals.subtotal,
                    "discount_type": data.discount.type.value if data.discount else None,
                    "discount_value": data.discount.value if data.discount else None,
                    "discount_amount": totals.discount_amount,
                    "tax_rate": data.tax_rate,
                    "tax_amount": totals.tax_amount,
                    "total": totals.total,
                    "amount_paid": ZERO,
                    "reverse_charge": totals.reverse_charge,
                    "notes": data.notes,
                    "payment_terms": data.payment_terms,
                    "issue_date": data.issue_date,
                    "due_date": data.due_date,
                    "sent_at": now if data.status == InvoiceStatus.SENT else None,
                    "created_at": now,
                    "updated_at": now,
                }
            )[0]

            invoice = Invoice.model_validate(row)
            self.line_items.create_many(invoice.id, data.line_items, decimals)

            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice.id,
                action=AuditAction.CREATE,
                changes={"created": invoice.model_dump(mode="json", exclude_none=True)}
            )

        logger.info(f"Created invoice {invoice.invoice_number} total {totals.total} {data.currency}")
        return invoice

    def get_by_id(self, invoice_id: UUID) -> Invoice | None:
        """Invoice if found and not deleted, None otherwise."""
        row = self.postgres.execute_single(
            "SELECT * FROM invoices WHERE id = %s AND deleted_at IS NULL",
            (invoice_id,)
        )

        if row is None:
            return None

        return Invoice.model_validate(row)

    def _write_update(self, invoice_id: UUID, fields: dict[str, Any]) -> Invoice:
        set_parts = [f"{field} = %({field})s" for field in fields]
        set_parts.append("updated_at = %(updated_at)s")

        row = self.postgres.execute_returning(
            f"""
            UPDATE invoices
            SET {', '.join(set_parts)}
            WHERE id = %(id)s AND deleted_at IS NULL
            RETURNING *
            """,
            {**fields, "updated_at": now_utc(), "id": invoice_id}
        )[0]
        return Invoice.model_validate(row)

    def _recompute(
        self,
        current: Invoice,
        line_items: list[LineItem],
        client: Client,
        discount,
        tax_rate: Decimal,
    ) -> dict[str, Any]:
        """Totals columns (and payment-driven status) for a full recomputation."""
        decimals = decimals_for_currency(current.currency)
        totals = compose(
            line_items, discount, tax_rate, client.tax_status,
            amount_paid=current.amount_paid, decimals=decimals,
        )
        fields: dict[str, Any] = {
            "client_id": client.id,
            "subtotal": totals.subtotal,
            "discount_type": discount.type.value if discount else None,
            "discount_value": discount.value if discount else None,
            "discount_amount": totals.discount_amount,
            "tax_rate": tax_rate,
            "tax_amount": totals.tax_amount,
            "total": totals.total,
            "reverse_charge": totals.reverse_charge,
        }
        if current.amount_paid > 0 and totals.amount_due <= 0:
            fields["status"] = InvoiceStatus.PAID.value
            fields["paid_at"] = now_utc()
        return fields

    def update(self, invoice_id: UUID, data: InvoiceUpdate) -> Invoice:
        """
        Update an invoice and recompute its totals from scratch.

        Args:
            invoice_id: Invoice UUID
            data: Fields to change; line_items replaces all lines

        Returns:
            Updated invoice

        Raises:
            ValueError: If invoice or client not found, invoice is paid or
                canceled, or the dates are inconsistent
        """
        with self.postgres.transaction():
            current = self._require_editable(invoice_id)
            client = self._require_client(data.client_id or current.client_id)
            decimals = decimals_for_currency(current.currency)

            if data.clear_discount:
                discount = None
            else:
                discount = data.discount or current.discount
            tax_rate = data.tax_rate if data.tax_rate is not None else current.tax_rate

            if data.line_items is not None:
                line_items = self.line_items.replace(invoice_id, data.line_items, decimals)
            else:
                line_items = self.line_items.list_for_invoice(invoice_id)

            issue_date = data.issue_date or current.issue_date
            due_date = data.due_date or current.due_date
            if due_date < issue_date:
                raise ValueError("due_date cannot be before issue_date")

            fields = self._recompute(current, line_items, client, discount, tax_rate)
            fields["issue_date"] = issue_date
            fields["due_date"] = due_date
            for name in ("notes", "payment_terms"):
                if name in data.model_fields_set:
                    fields[name] = getattr(data, name)

            updated = self._write_update(invoice_id, fields)

            changes = compute_changes(
                current.model_dump(mode="json"),
                updated.model_dump(mode="json")
            )
            if changes:
                self.audit.log_change(
                    entity_type="invoice",
                    entity_id=invoice_id,
                    action=AuditAction.UPDATE,
                    changes=changes
                )

        if updated.status == InvoiceStatus.PAID and current.status != InvoiceStatus.PAID:
            self.event_bus.publish(InvoicePaid.create(invoice=updated))

        return updated

    def update_line_item(self, invoice_id: UUID, line_item_id: UUID, data: LineItemUpdate) -> Invoice:
        """
        Change one line item and recompute the invoice totals.

        Raises:
            ValueError: If invoice or line item not found, or the line item
                belongs to another invoice
        """
        with self.postgres.transaction():
            current = self._require_editable(invoice_id)
            item = self.line_items.get_by_id(line_item_id)
            if item is None or item.invoice_id != invoice_id:
                raise ValueError(f"Line item {line_item_id} not found on invoice {invoice_id}")

            self.line_items.update(line_item_id, data, decimals_for_currency(current.currency))
            return self.recalculate(invoice_id)

    def recalculate(self, invoice_id: UUID) -> Invoice:
        """
        Recompute and store totals from the invoice's current line items,
        discount, tax rate and client tax status.

        Raises:
            ValueError: If invoice or client not found, or invoice is paid
                or canceled
        """
        with self.postgres.transaction():
            current = self._require_editable(invoice_id)
            client = self._require_client(current.client_id)
            line_items = self.line_items.list_for_invoice(invoice_id)
            fields = self._recompute(current, line_items, client, current.discount, current.tax_rate)
            return self._write_update(invoice_id, fields)

    def send(self, invoice_id: UUID) -> Invoice:
        """
        Mark an invoice sent and queue its delivery.

        A draft becomes SENT. Sending again re-queues delivery without
        changing the status.

        Raises:
            ValueError: If invoice not found, canceled or already paid
        """
        current = self._require_editable(invoice_id)

        now = now_utc()
        fields: dict[str, Any] = {"sent_at": now}
        if current.status == InvoiceStatus.DRAFT:
            fields["status"] = InvoiceStatus.SENT.value

        updated = self._write_update(invoice_id, fields)

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice_id,
            action=AuditAction.UPDATE,
            changes={
                "status": {"old": current.status.value, "new": updated.status.value},
                "sent_at": {
                    "old": current.sent_at.isoformat() if current.sent_at else None,
                    "new": now.isoformat(),
                }
            }
        )

        self.event_bus.publish(InvoiceSent.create(invoice=updated))

        return updated

    def record_payment(self, invoice_id: UUID, amount) -> Invoice:
        """
        Record a payment on an invoice.

        Overpayment is accepted and logged; amount_due goes negative.

        Args:
            invoice_id: Invoice UUID
            amount: Payment amount in invoice currency

        Returns:
            Updated invoice (status becomes PARTIAL or PAID)

        Raises:
            ValueError: If amount is not positive, or invoice not found,
                canceled or already paid
        """
        payment = to_decimal(amount)
        if payment <= 0:
            raise ValueError("Payment amount must be positive")

        current = self._require_editable(invoice_id)
        decimals = decimals_for_currency(current.currency)

        new_amount_paid = round_money(current.amount_paid + payment, decimals)
        now = now_utc()

        if new_amount_paid >= current.total:
            new_status = InvoiceStatus.PAID
            paid_at = now
        else:
            new_status = InvoiceStatus.PARTIAL
            paid_at = current.paid_at

        if new_amount_paid > current.total:
            logger.warning(
                f"Invoice {current.invoice_number} overpaid: "
                f"{new_amount_paid} paid against total {current.total}"
            )

        updated = self._write_update(
            invoice_id,
            {"amount_paid": new_amount_paid, "status": new_status.value, "paid_at": paid_at}
        )

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice_id,
            action=AuditAction.UPDATE,
            changes={
                "amount_paid": {"old": str(current.amount_paid), "new": str(new_amount_paid)},
                "status": {"old": current.status.value, "new": new_status.value},
                "payment_recorded": str(payment)
            }
        )

        if new_status == InvoiceStatus.PAID:
            self.event_bus.publish(InvoicePaid.create(invoice=updated))

        return updated

    def cancel(self, invoice_id: UUID) -> Invoice:
        """
        Cancel an invoice.

        Raises:
            ValueError: If invoice not found, already canceled or paid
        """
        current = self._require_editable(invoice_id)

        now = now_utc()
        updated = self._write_update(
            invoice_id,
            {"status": InvoiceStatus.CANCELED.value, "canceled_at": now}
        )

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice_id,
            action=AuditAction.UPDATE,
            changes={
                "status": {"old": current.status.value, "new": InvoiceStatus.CANCELED.value},
                "canceled_at": {"old": None, "new": now.isoformat()}
            }
        )

        return updated

    def get_payment_status(self, invoice_id: UUID) -> dict[str, Any]:
        """
        Payment position of an invoice.

        Returns:
            {"status": PaymentStatus, "total", "amount_paid", "amount_due"}
            where amount_due is never below zero.

        Raises:
            ValueError: If invoice not found
        """
        invoice = self.get_by_id(invoice_id)
        if invoice is None:
            raise ValueError(f"Invoice {invoice_id} not found")

        if invoice.amount_paid <= 0:
            status = PaymentStatus.UNPAID
        elif invoice.amount_paid >= invoice.total:
            status = PaymentStatus.PAID
        else:
            status = PaymentStatus.PARTIAL

        return {
            "status": status,
            "total": invoice.total,
            "amount_paid": invoice.amount_paid,
            "amount_due": max(ZERO, invoice.amount_due),
        }

    def list_for_client(self, client_id: UUID, limit: int = 50) -> list[Invoice]:
        """Invoices for a client, newest first."""
        rows = self.postgres.execute(
            """
            SELECT * FROM invoices
            WHERE client_id = %s AND deleted_at IS NULL
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (client_id, limit)
        )

        return [Invoice.model_validate(row) for row in rows]

    def list_unpaid(self, limit: int = 50) -> list[Invoice]:
        """Sent, partially paid and overdue invoices, earliest due first."""
        rows = self.postgres.execute(
            """
            SELECT * FROM invoices
            WHERE status IN ('sent', 'partial', 'overdue')
              AND deleted_at IS NULL
            ORDER BY due_date ASC
            LIMIT %s
            """,
            (limit,)
        )

        return [Invoice.model_validate(row) for row in rows]

    def list_past_due(self, as_of: date) -> list[Invoice]:
        """Sent or partially paid invoices whose due date is before as_of."""
        rows = self.postgres.execute(
            """
            SELECT * FROM invoices
            WHERE status IN ('sent', 'partial')
              AND due_date < %s
              AND deleted_at IS NULL
            ORDER BY due_date ASC
            """,
            (as_of,)
        )

        return [Invoice.model_validate(row) for row in rows]

    def list_overdue(self) -> list[Invoice]:
        """Invoices currently marked overdue, earliest due first."""
        rows = self.postgres.execute(
            """
            SELECT * FROM invoices
            WHERE status = 'overdue' AND deleted_at IS NULL
            ORDER BY due_date ASC
            """
        )

        return [Invoice.model_validate(row) for row in rows]

    def mark_overdue(self, invoice_id: UUID) -> Invoice:
        """
        Flag an unpaid past-due invoice as overdue.

        Raises:
            ValueError: If invoice not found or not in sent/partial status
        """
        current = self.get_by_id(invoice_id)
        if current is None:
            raise ValueError(f"Invoice {invoice_id} not found")
        if current.status not in (InvoiceStatus.SENT, InvoiceStatus.PARTIAL):
            raise ValueError(f"Invoice {invoice_id} is {current.status.value}, not sent or partial")

        updated = self._write_update(invoice_id, {"status": InvoiceStatus.OVERDUE.value})

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice_id,
            action=AuditAction.UPDATE,
            changes={"status": {"old": current.status.value, "new": InvoiceStatus.OVERDUE.value}}
        )

        return updated
