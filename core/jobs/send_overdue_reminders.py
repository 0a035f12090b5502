"""
Overdue reminder job.

For every overdue invoice, sends a reminder when the number of days past
due matches one of the owner's reminder intervals, at most once per invoice
per day. Every attempt is written to the reminder log.
"""

import logging
from datetime import date

from clients.email_client import EmailGatewayClient, EmailGatewayError
from clients.postgres_client import PostgresClient
from core.models import Invoice, ReminderSettings, ReminderStatus, UserProfile
from core.reminders import days_overdue, reminder_due, render_reminder
from core.services.client_service import ClientService
from core.services.invoice_service import InvoiceService
from core.services.reminder_service import ReminderService
from core.services.user_service import UserService
from utils.timezone import today_utc
from utils.user_context import user_context

logger = logging.getLogger(__name__)


class OverdueReminderSender:
    """Sends interval-based payment reminders for overdue invoices."""

    def __init__(
        self,
        admin_postgres: PostgresClient,
        invoices: InvoiceService,
        clients: ClientService,
        reminders: ReminderService,
        users: UserService,
        email_client: EmailGatewayClient,
    ):
        self.admin_postgres = admin_postgres
        self.invoices = invoices
        self.clients = clients
        self.reminders = reminders
        self.users = users
        self.email_client = email_client

    def run(self, today: date | None = None) -> dict[str, int]:
        """
        Process every user's overdue invoices.

        Returns:
            Dict with counts: {"sent": N, "skipped": N, "failed": N}
        """
        today = today or today_utc()
        results = {"sent": 0, "skipped": 0, "failed": 0}

        rows = self.admin_postgres.execute(
            "SELECT DISTINCT user_id FROM invoices WHERE status = 'overdue' AND deleted_at IS NULL"
        )

        for row in rows:
            user_id = row["user_id"]
            with user_context(user_id):
                overdue = self.invoices.list_overdue()
                settings = self.reminders.get_settings()
                if not settings.enabled:
                    logger.info(f"Reminders disabled for user {user_id}")
                    results["skipped"] += len(overdue)
                    continue

                sender = self.users.get_profile(user_id)
                for invoice in overdue:
                    try:
                        outcome = self._process(invoice, settings, sender, today)
                    except Exception:
                        logger.exception(f"Error processing reminder for invoice {invoice.invoice_number}")
                        outcome = "failed"
                    results[outcome] += 1

        logger.info(
            f"Reminder job complete: {results['sent']} sent, "
            f"{results['skipped']} skipped, {results['failed']} failed"
        )
        return results

    def _process(
        self,
        invoice: Invoice,
        settings: ReminderSettings,
        sender: UserProfile | None,
        today: date,
    ) -> str:
        overdue_days = days_overdue(invoice.due_date, today)
        if not reminder_due(overdue_days, settings.intervals):
            return "skipped"

        if self.reminders.was_sent_today(invoice.id, today):
            logger.info(f"Reminder already sent today for invoice {invoice.invoice_number}")
            return "skipped"

        client = self.clients.get_by_id(invoice.client_id)
        if client is None or not client.email:
            self.reminders.log_reminder(
                invoice.id, overdue_days, "N/A", ReminderStatus.FAILED,
                error_message="Client email not set",
            )
            return "failed"

        subject, body = render_reminder(settings, invoice, client, sender, overdue_days)
        try:
            self.email_client.send_reminder_email(client.email, subject, body, cc=settings.cc_email)
        except EmailGatewayError as e:
            self.reminders.log_reminder(
                invoice.id, overdue_days, client.email, ReminderStatus.FAILED,
                error_message=str(e),
            )
            return "failed"

        self.reminders.log_reminder(invoice.id, overdue_days, client.email, ReminderStatus.SENT)
        logger.info(
            f"Sent reminder for invoice {invoice.invoice_number} to {client.email} "
            f"({overdue_days} days overdue)"
        )
        return "sent"
