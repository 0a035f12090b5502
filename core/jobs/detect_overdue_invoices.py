"""
Overdue detection job.

Sent or partially paid invoices whose due date has passed become overdue,
unless payments already cover the total.
"""

import logging
from datetime import date

from clients.postgres_client import PostgresClient
from core.services.invoice_service import InvoiceService
from utils.timezone import today_utc
from utils.user_context import user_context

logger = logging.getLogger(__name__)


def detect_overdue_invoices(
    admin_postgres: PostgresClient,
    invoices: InvoiceService,
    today: date | None = None,
) -> dict[str, int]:
    """
    Mark past-due unpaid invoices as overdue.

    Args:
        admin_postgres: Admin (BYPASSRLS) client used to find affected users
        invoices: InvoiceService on the application connection
        today: Reference date (defaults to today in UTC)

    Returns:
        Dict with counts: {"marked": N, "skipped": N, "failed": N}
    """
    today = today or today_utc()
    results = {"marked": 0, "skipped": 0, "failed": 0}

    rows = admin_postgres.execute(
        """
        SELECT DISTINCT user_id FROM invoices
        WHERE status IN ('sent', 'partial') AND due_date < %s AND deleted_at IS NULL
        """,
        (today,)
    )

    for row in rows:
        with user_context(row["user_id"]):
            for invoice in invoices.list_past_due(today):
                if invoice.amount_due <= 0:
                    results["skipped"] += 1
                    continue
                try:
                    invoices.mark_overdue(invoice.id)
                except Exception:
                    logger.exception(f"Could not mark invoice {invoice.invoice_number} overdue")
                    results["failed"] += 1
                    continue
                logger.info(f"Marked invoice {invoice.invoice_number} overdue (due {invoice.due_date})")
                results["marked"] += 1

    logger.info(
        f"Overdue detection complete: {results['marked']} marked, "
        f"{results['skipped']} skipped, {results['failed']} failed"
    )
    return results
