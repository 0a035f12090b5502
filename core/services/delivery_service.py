"""
Invoice delivery outbox.

Sending an invoice (or generating one from a schedule) enqueues a delivery
task after the invoice has committed. A scheduled job renders the PDF and
emails it. Delivery failures are recorded on the task and retried up to
BillingConfig.delivery_max_attempts; they never change the invoice or its
generation log.
"""

import logging
from typing import Callable
from uuid import UUID, uuid4

from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from core.config import BillingConfig
from core.models import (
    Client, DeliveryStatus, DeliveryTask, Invoice, InvoiceStatus, LineItem, UserProfile,
)
from core.money import format_money
from core.services.client_service import ClientService
from core.services.invoice_service import InvoiceService
from core.services.line_item_service import LineItemService
from core.services.user_service import UserService
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

PdfRenderer = Callable[[Invoice, list[LineItem], Client, UserProfile | None], bytes]


class DeliveryService:
    """Service for queued invoice deliveries."""

    def __init__(
        self,
        postgres: PostgresClient,
        invoices: InvoiceService,
        line_items: LineItemService,
        clients: ClientService,
        users: UserService,
        config: BillingConfig | None = None,
    ):
        self.postgres = postgres
        self.invoices = invoices
        self.line_items = line_items
        self.clients = clients
        self.users = users
        self.config = config or BillingConfig()

    def enqueue(self, invoice_id: UUID, user_id: UUID | None = None) -> DeliveryTask:
        """Queue an invoice for PDF + email delivery."""
        if user_id is None:
            user_id = get_current_user_id()
        now = now_utc()

        row = self.postgres.execute_returning(
            """
            INSERT INTO invoice_deliveries (
                id, user_id, invoice_id, status, attempts, created_at, updated_at
            ) VALUES (
                %(id)s, %(user_id)s, %(invoice_id)s, %(status)s, 0,
                %(created_at)s, %(updated_at)s
            )
            RETURNING *
            """,
            {
                "id": uuid4(),
                "user_id": user_id,
                "invoice_id": invoice_id,
                "status": DeliveryStatus.PENDING.value,
                "created_at": now,
                "updated_at": now,
            }
        )[0]

        task = DeliveryTask.model_validate(row)
        logger.info(f"Queued delivery {task.id} for invoice {invoice_id}")
        return task

    def get_by_id(self, task_id: UUID) -> DeliveryTask | None:
        row = self.postgres.execute_single(
            "SELECT * FROM invoice_deliveries WHERE id = %s",
            (task_id,)
        )

        if row is None:
            return None

        return DeliveryTask.model_validate(row)

    def list_pending(self, limit: int | None = None) -> list[DeliveryTask]:
        """Pending tasks, oldest first."""
        rows = self.postgres.execute(
            """
            SELECT * FROM invoice_deliveries
            WHERE status = 'pending'
            ORDER BY created_at ASC
            LIMIT %s
            """,
            (limit or self.config.delivery_batch_size,)
        )

        return [DeliveryTask.model_validate(row) for row in rows]

    def list_for_invoice(self, invoice_id: UUID) -> list[DeliveryTask]:
        """Delivery history of an invoice, newest first."""
        rows = self.postgres.execute(
            """
            SELECT * FROM invoice_deliveries
            WHERE invoice_id = %s
            ORDER BY created_at DESC
            """,
            (invoice_id,)
        )

        return [DeliveryTask.model_validate(row) for row in rows]

    def _set_status(
        self,
        task_id: UUID,
        status: DeliveryStatus,
        attempts: int,
        last_error: str | None = None,
    ) -> DeliveryTask:
        now = now_utc()
        row = self.postgres.execute_returning(
            """
            UPDATE invoice_deliveries
            SET status = %(status)s, attempts = %(attempts)s, last_error = %(last_error)s,
                sent_at = %(sent_at)s, updated_at = %(updated_at)s
            WHERE id = %(id)s
            RETURNING *
            """,
            {
                "status": status.value,
                "attempts": attempts,
                "last_error": last_error,
                "sent_at": now if status == DeliveryStatus.SENT else None,
                "updated_at": now,
                "id": task_id,
            }
        )[0]
        return DeliveryTask.model_validate(row)

    def mark_sent(self, task: DeliveryTask) -> DeliveryTask:
        return self._set_status(task.id, DeliveryStatus.SENT, task.attempts + 1)

    def mark_skipped(self, task: DeliveryTask, reason: str) -> DeliveryTask:
        """Precondition failed (no client email, invoice canceled). Not retried."""
        return self._set_status(task.id, DeliveryStatus.SKIPPED, task.attempts, reason)

    def record_failure(self, task: DeliveryTask, error: str) -> DeliveryTask:
        """
        Count a failed attempt. The task stays pending for retry until it
        reaches max attempts, then becomes failed.
        """
        attempts = task.attempts + 1
        if attempts >= self.config.delivery_max_attempts:
            status = DeliveryStatus.FAILED
        else:
            status = DeliveryStatus.PENDING
        return self._set_status(task.id, status, attempts, error)

    def _compose_email(self, invoice: Invoice, client: Client, sender: UserProfile | None) -> tuple[str, str]:
        sender_name = sender.display_name if sender else self.config.app_name
        subject = f"Invoice {invoice.invoice_number} from {sender_name}"
        body = (
            f"Hello {client.display_name},\n\n"
            f"Please find attached invoice {invoice.invoice_number} for "
            f"{format_money(invoice.amount_due, invoice.currency)}, "
            f"due on {invoice.due_date.isoformat()}.\n\n"
            f"Thank you,\n{sender_name}"
        )
        return subject, body

    def deliver(
        self,
        task: DeliveryTask,
        render_pdf: PdfRenderer,
        email_client: EmailGatewayClient,
    ) -> DeliveryStatus:
        """
        Attempt one delivery.

        Returns:
            Resulting task status
        """
        invoice = self.invoices.get_by_id(task.invoice_id)
        if invoice is None:
            return self.mark_skipped(task, "Invoice not found").status
        if invoice.status == InvoiceStatus.CANCELED:
            return self.mark_skipped(task, "Invoice canceled").status

        client = self.clients.get_by_id(invoice.client_id)
        if client is None or not client.email:
            return self.mark_skipped(task, "Client email not set").status

        try:
            sender = self.users.get_profile(task.user_id)
            items = self.line_items.list_for_invoice(invoice.id)
            pdf_bytes = render_pdf(invoice, items, client, sender)
            subject, body = self._compose_email(invoice, client, sender)
            email_client.send_invoice_email(
                to=client.email,
                invoice_number=invoice.invoice_number,
                pdf_bytes=pdf_bytes,
                subject=subject,
                body=body,
            )
        except Exception as e:
            logger.error(f"Delivery {task.id} of invoice {invoice.invoice_number} failed: {e}")
            return self.record_failure(task, str(e)).status

        logger.info(f"Delivered invoice {invoice.invoice_number} to {client.email}")
        return self.mark_sent(task).status

    def process_pending(
        self,
        render_pdf: PdfRenderer,
        email_client: EmailGatewayClient,
    ) -> dict[str, int]:
        """
        Attempt every pending delivery for the current user.

        Returns:
            Dict with counts: {"sent": N, "failed": N, "skipped": N, "retrying": N}
        """
        results = {"sent": 0, "failed": 0, "skipped": 0, "retrying": 0}

        for task in self.list_pending():
            status = self.deliver(task, render_pdf, email_client)
            if status == DeliveryStatus.PENDING:
                results["retrying"] += 1
            else:
                results[status.value] += 1

        return results
