"""Invoice delivery job: drains the delivery outbox for every user."""

import logging

from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from core.services.delivery_service import DeliveryService, PdfRenderer
from utils.user_context import user_context

logger = logging.getLogger(__name__)


def deliver_pending_invoices(
    admin_postgres: PostgresClient,
    delivery: DeliveryService,
    render_pdf: PdfRenderer,
    email_client: EmailGatewayClient,
) -> dict[str, int]:
    """
    Attempt every pending delivery.

    Returns:
        Dict with counts: {"sent": N, "failed": N, "skipped": N, "retrying": N}
    """
    totals = {"sent": 0, "failed": 0, "skipped": 0, "retrying": 0}

    rows = admin_postgres.execute(
        "SELECT DISTINCT user_id FROM invoice_deliveries WHERE status = 'pending'"
    )

    for row in rows:
        with user_context(row["user_id"]):
            results = delivery.process_pending(render_pdf, email_client)
        for key, count in results.items():
            totals[key] += count

    logger.info(
        f"Delivery run complete: {totals['sent']} sent, {totals['skipped']} skipped, "
        f"{totals['retrying']} retrying, {totals['failed']} failed"
    )
    return totals
