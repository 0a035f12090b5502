"""Core domain models."""

from core.models.totals import DiscountSpec, DiscountType, RecipientTaxStatus, InvoiceTotals
from core.models.client import Client, ClientCreate, ClientUpdate
from core.models.line_item import LineItem, LineItemCreate, LineItemUpdate
from core.models.invoice import Invoice, InvoiceCreate, InvoiceUpdate, InvoiceStatus, PaymentStatus
from core.models.recurring_invoice import (
    RecurringInvoice, RecurringInvoiceCreate, RecurringInvoiceUpdate, RecurringLineItem,
    Frequency, GenerationLogEntry, GenerationStatus,
)
from core.models.delivery import DeliveryTask, DeliveryStatus
from core.models.reminder import ReminderSettings, ReminderLog, ReminderStatus
from core.models.user import UserProfile

__all__ = [
    # Totals
    "DiscountSpec", "DiscountType", "RecipientTaxStatus", "InvoiceTotals",
    # Client
    "Client", "ClientCreate", "ClientUpdate",
    # LineItem
    "LineItem", "LineItemCreate", "LineItemUpdate",
    # Invoice
    "Invoice", "InvoiceCreate", "InvoiceUpdate", "InvoiceStatus", "PaymentStatus",
    # RecurringInvoice
    "RecurringInvoice", "RecurringInvoiceCreate", "RecurringInvoiceUpdate", "RecurringLineItem",
    "Frequency", "GenerationLogEntry", "GenerationStatus",
    # Delivery
    "DeliveryTask", "DeliveryStatus",
    # Reminder
    "ReminderSettings", "ReminderLog", "ReminderStatus",
    # User
    "UserProfile",
]
