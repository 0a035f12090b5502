"""
Overdue reminder rules.

A reminder goes out on the days an invoice is exactly N days past due for
each configured interval N (default 3, 7 and 14). Everything here is pure;
core.jobs.send_overdue_reminders does the I/O.
"""

from datetime import date

from core.models import Client, Invoice, ReminderSettings, UserProfile
from core.money import format_money
from utils.timezone import days_between


class _TemplateValues(dict):
    """Leave unknown placeholders in user-edited templates as-is."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def days_overdue(due_date: date, today: date) -> int:
    """Whole days past due. Zero or negative means not overdue yet."""
    return days_between(due_date, today)


def reminder_due(overdue_days: int, intervals: list[int]) -> bool:
    """Whether today is one of the reminder days."""
    return overdue_days > 0 and overdue_days in intervals


def render_reminder(
    settings: ReminderSettings,
    invoice: Invoice,
    client: Client,
    sender: UserProfile | None,
    overdue_days: int,
) -> tuple[str, str]:
    """
    Fill the user's reminder subject and body templates.

    Placeholders: {client_name}, {invoice_number}, {amount_due}, {due_date},
    {days_overdue}, {sender_name}.

    Returns:
        (subject, body)
    """
    values = _TemplateValues(
        client_name=client.display_name,
        invoice_number=invoice.invoice_number,
        amount_due=format_money(invoice.amount_due, invoice.currency),
        due_date=invoice.due_date.isoformat(),
        days_overdue=overdue_days,
        sender_name=sender.display_name if sender else "",
    )
    subject = settings.email_subject.format_map(values)
    body = settings.email_template.format_map(values)
    return subject, body
