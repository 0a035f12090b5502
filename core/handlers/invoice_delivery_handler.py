"""
Handlers that queue invoice delivery.

Both fire after the invoice has committed. They only enqueue; the delivery
job renders and emails, so a slow or failing gateway never touches the
request or generation run that published the event.
"""

import logging
from typing import Callable

from core.events import InvoiceSent, RecurringInvoiceGenerated

logger = logging.getLogger(__name__)


def handle_invoice_sent(delivery_service) -> Callable:
    """
    Factory that returns an InvoiceSent handler.

    Args:
        delivery_service: DeliveryService instance

    Returns:
        Handler callable that queues the invoice for delivery
    """

    def handler(event: InvoiceSent):
        invoice = event.invoice
        delivery_service.enqueue(invoice.id, user_id=invoice.user_id)

    return handler


def handle_recurring_invoice_generated(delivery_service) -> Callable:
    """Factory that returns a RecurringInvoiceGenerated handler."""

    def handler(event: RecurringInvoiceGenerated):
        invoice = event.invoice
        client = event.client
        if client is not None and not client.email:
            logger.info(
                f"Invoice {invoice.invoice_number} generated for client without email, "
                "delivery will be skipped"
            )
        delivery_service.enqueue(invoice.id, user_id=invoice.user_id)

    return handler
