"""
arq worker for scheduled invoicing jobs.

Run with:
    arq core.jobs.worker.WorkerSettings

Schedule (UTC):
    00:00  generate recurring invoices
    00:30  mark overdue invoices
    09:00  send overdue reminders
    every 5 minutes  deliver queued invoices

Each run takes a Valkey lock first, so overlapping ticks or a second worker
skip instead of generating twice.
"""

import asyncio
import logging
import os
from typing import Any, Callable

from arq.connections import RedisSettings
from arq.cron import cron

from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import (
    get_admin_database_url, get_database_url, get_email_config, get_valkey_url,
)
from core.audit import AuditLogger
from core.config import BillingConfig
from core.event_bus import EventBus
from core.handlers.invoice_delivery_handler import (
    handle_invoice_sent, handle_recurring_invoice_generated,
)
from core.jobs.deliver_invoices import deliver_pending_invoices
from core.jobs.detect_overdue_invoices import detect_overdue_invoices
from core.jobs.generate_recurring_invoices import RecurringInvoiceGenerator
from core.jobs.send_overdue_reminders import OverdueReminderSender
from core.pdf import render_invoice_pdf
from core.services.client_service import ClientService
from core.services.delivery_service import DeliveryService
from core.services.invoice_number_service import InvoiceNumberAllocator
from core.services.invoice_service import InvoiceService
from core.services.line_item_service import LineItemService
from core.services.recurring_invoice_service import RecurringInvoiceService
from core.services.reminder_service import ReminderService
from core.services.user_service import UserService

logger = logging.getLogger(__name__)

_LOCK_PREFIX = "invoicing:jobs"


def build_services(config: BillingConfig | None = None) -> dict[str, Any]:
    """Wire clients, services and event handlers. Secrets come from Vault."""
    config = config or BillingConfig()

    postgres = PostgresClient(get_database_url())
    admin_postgres = PostgresClient(get_admin_database_url())
    valkey = ValkeyClient(get_valkey_url())
    email_client = EmailGatewayClient(**get_email_config())

    audit = AuditLogger(postgres)
    event_bus = EventBus()

    clients = ClientService(postgres, audit)
    line_items = LineItemService(postgres, audit)
    numbers = InvoiceNumberAllocator(postgres, config)
    invoices = InvoiceService(postgres, audit, event_bus, line_items, clients, numbers, config)
    recurring_invoices = RecurringInvoiceService(postgres, audit)
    users = UserService(postgres)
    reminders = ReminderService(postgres, config)
    delivery = DeliveryService(postgres, invoices, line_items, clients, users, config)

    event_bus.subscribe("InvoiceSent", handle_invoice_sent(delivery))
    event_bus.subscribe("RecurringInvoiceGenerated", handle_recurring_invoice_generated(delivery))

    return {
        "config": config,
        "valkey": valkey,
        "admin_postgres": admin_postgres,
        "email_client": email_client,
        "invoices": invoices,
        "delivery": delivery,
        "generator": RecurringInvoiceGenerator(
            postgres, admin_postgres, recurring_invoices, invoices, clients, event_bus, config
        ),
        "reminder_sender": OverdueReminderSender(
            admin_postgres, invoices, clients, reminders, users, email_client
        ),
    }


def _run_locked(ctx: dict, name: str, job: Callable[[], dict[str, int]]) -> dict[str, int] | None:
    """Run job under its Valkey lock. None if another run holds the lock."""
    config: BillingConfig = ctx["config"]
    with ctx["valkey"].lock(f"{_LOCK_PREFIX}:{name}", config.job_lock_ttl_seconds) as acquired:
        if not acquired:
            logger.info(f"Skipping {name}: previous run still in progress")
            return None
        return job()


async def generate_recurring_invoices_task(ctx: dict) -> dict[str, int] | None:
    """Daily cron: generate invoices for due recurring schedules."""
    return await asyncio.to_thread(
        _run_locked, ctx, "generate_recurring_invoices", ctx["generator"].run
    )


async def detect_overdue_invoices_task(ctx: dict) -> dict[str, int] | None:
    """Daily cron: mark past-due invoices overdue."""
    return await asyncio.to_thread(
        _run_locked, ctx, "detect_overdue_invoices",
        lambda: detect_overdue_invoices(ctx["admin_postgres"], ctx["invoices"]),
    )


async def send_overdue_reminders_task(ctx: dict) -> dict[str, int] | None:
    """Daily cron: send interval-based payment reminders."""
    return await asyncio.to_thread(
        _run_locked, ctx, "send_overdue_reminders", ctx["reminder_sender"].run
    )


async def deliver_invoices_task(ctx: dict) -> dict[str, int] | None:
    """Frequent cron: drain the invoice delivery outbox."""
    return await asyncio.to_thread(
        _run_locked, ctx, "deliver_invoices",
        lambda: deliver_pending_invoices(
            ctx["admin_postgres"], ctx["delivery"], render_invoice_pdf, ctx["email_client"]
        ),
    )


async def startup(ctx: dict) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.update(await asyncio.to_thread(build_services))
    logger.info("Invoicing worker started")


async def shutdown(ctx: dict) -> None:
    PostgresClient.close_all_pools()
    if "valkey" in ctx:
        ctx["valkey"].close()
    logger.info("Invoicing worker stopped")


class WorkerSettings:
    """arq worker settings."""

    functions = [
        generate_recurring_invoices_task,
        detect_overdue_invoices_task,
        send_overdue_reminders_task,
        deliver_invoices_task,
    ]
    redis_settings = RedisSettings.from_dsn(os.getenv("VALKEY_URL", "redis://localhost:6379/0"))
    on_startup = startup
    on_shutdown = shutdown

    job_timeout = int(os.getenv("ARQ_JOB_TIMEOUT", "900"))
    # Generation is not idempotent; a failed run is picked up by the next tick
    max_tries = 1

    cron_jobs = [
        cron(generate_recurring_invoices_task, hour=0, minute=0),
        cron(detect_overdue_invoices_task, hour=0, minute=30),
        cron(send_overdue_reminders_task, hour=9, minute=0),
        cron(deliver_invoices_task, minute=set(range(0, 60, 5))),
    ]
