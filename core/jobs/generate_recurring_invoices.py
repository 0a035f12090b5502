"""
Recurring invoice generation job.

Once per scheduler tick, every active schedule whose next invoice date has
arrived produces one invoice. Per schedule, in one transaction:

    template lines + client -> invoice (totals composed, number allocated)
    -> line items -> schedule advanced or deactivated -> success log entry

If anything in that unit fails it rolls back as a whole, a failed log entry
is written, and the run moves on to the next schedule. Delivery (PDF +
email) is queued through the event bus only after the commit.
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from clients.postgres_client import PostgresClient
from core.config import BillingConfig
from core.event_bus import EventBus
from core.events import RecurringInvoiceGenerated
from core.models import (
    Client, GenerationStatus, Invoice, InvoiceCreate, InvoiceStatus, RecurringInvoice,
)
from core.recurrence import next_date
from core.services.client_service import ClientService
from core.services.invoice_service import InvoiceService
from core.services.recurring_invoice_service import RecurringInvoiceService
from utils.timezone import now_utc
from utils.user_context import user_context

logger = logging.getLogger(__name__)


class RecurringInvoiceGenerator:
    """
    Turns due schedules into invoices.

    Not safe to run twice concurrently for the same due date; the worker
    holds a Valkey lock around run().
    """

    def __init__(
        self,
        postgres: PostgresClient,
        admin_postgres: PostgresClient,
        recurring_invoices: RecurringInvoiceService,
        invoices: InvoiceService,
        clients: ClientService,
        event_bus: EventBus,
        config: BillingConfig | None = None,
    ):
        self.postgres = postgres
        self.admin_postgres = admin_postgres
        self.recurring_invoices = recurring_invoices
        self.invoices = invoices
        self.clients = clients
        self.event_bus = event_bus
        self.config = config or BillingConfig()

    def _users_with_due_schedules(self, now: datetime) -> list[UUID]:
        # Admin connection: RLS would hide other users' schedules
        rows = self.admin_postgres.execute(
            """
            SELECT DISTINCT user_id FROM recurring_invoices
            WHERE is_active AND deleted_at IS NULL AND next_invoice_date <= %s
            """,
            (now.date(),)
        )
        return [row["user_id"] for row in rows]

    def run(self, now: datetime | None = None) -> dict[str, int]:
        """
        Generate invoices for every due schedule of every user.

        Args:
            now: Run time (defaults to current UTC time)

        Returns:
            Dict with counts: {"generated": N, "failed": N, "deactivated": N}
        """
        now = now or now_utc()
        results = {"generated": 0, "failed": 0, "deactivated": 0}

        user_ids = self._users_with_due_schedules(now)
        logger.info(f"Recurring generation started: {len(user_ids)} users with due schedules")

        for user_id in user_ids:
            with user_context(user_id):
                for schedule in self.recurring_invoices.list_due(now.date()):
                    invoice, deactivated = self.generate_one(schedule, now)
                    if invoice is None:
                        results["failed"] += 1
                        continue
                    results["generated"] += 1
                    if deactivated:
                        results["deactivated"] += 1

        logger.info(
            f"Recurring generation complete: {results['generated']} generated, "
            f"{results['failed']} failed, {results['deactivated']} deactivated"
        )
        return results

    def generate_one(self, schedule: RecurringInvoice, now: datetime) -> tuple[Invoice | None, bool]:
        """
        Generate one invoice from a schedule, isolated from every other schedule.

        Must run inside the schedule owner's user context.

        Returns:
            (invoice, deactivated). invoice is None when generation failed.
        """
        try:
            with self.postgres.transaction():
                invoice, client, deactivated = self._generate(schedule, now)
        except Exception as e:
            logger.exception(f"Recurring invoice {schedule.id} failed to generate")
            self._log_failure(schedule, str(e))
            return None, False

        logger.info(
            f"Recurring invoice {schedule.id} generated {invoice.invoice_number}"
            + (" (schedule ended)" if deactivated else "")
        )
        self.event_bus.publish(
            RecurringInvoiceGenerated.create(invoice=invoice, schedule=schedule, client=client)
        )
        return invoice, deactivated

    def _generate(self, schedule: RecurringInvoice, now: datetime) -> tuple[Invoice, Client, bool]:
        template_lines = self.recurring_invoices.list_line_items(schedule.id)
        if not template_lines:
            raise ValueError(f"Recurring invoice {schedule.id} has no line items")

        client = self.clients.get_by_id(schedule.client_id)
        if client is None:
            raise ValueError(f"Client {schedule.client_id} not found")

        issue_date = now.date()
        terms_days = schedule.payment_terms_days
        if terms_days is None:
            terms_days = self.config.payment_terms_days

        invoice = self.invoices.create(
            InvoiceCreate(
                client_id=schedule.client_id,
                line_items=[line.to_create() for line in template_lines],
                discount=schedule.discount,
                tax_rate=schedule.tax_rate,
                currency=schedule.currency,
                notes=schedule.notes,
                payment_terms=schedule.payment_terms,
                status=InvoiceStatus.SENT,
                issue_date=issue_date,
                due_date=issue_date + timedelta(days=terms_days),
            ),
            number_prefix=schedule.invoice_number_prefix,
            recurring_invoice_id=schedule.id,
        )

        following = next_date(schedule.next_invoice_date, schedule.frequency)
        deactivated = schedule.end_date is not None and following > schedule.end_date
        if deactivated:
            self.recurring_invoices.deactivate(schedule.id, generated_at=now)
        else:
            self.recurring_invoices.advance(schedule.id, following, generated_at=now)

        self.recurring_invoices.log_generation(
            schedule.id, GenerationStatus.SUCCESS, generated_invoice_id=invoice.id
        )
        return invoice, client, deactivated

    def _log_failure(self, schedule: RecurringInvoice, error_message: str) -> None:
        # Outside the rolled-back transaction so the entry survives
        try:
            self.recurring_invoices.log_generation(
                schedule.id, GenerationStatus.FAILED, error_message=error_message
            )
        except Exception:
            logger.exception(f"Could not record failed generation for {schedule.id}")
