"""
Reminder settings and reminder log.

Users without stored settings get the defaults: enabled, with the
configured reminder intervals (3/7/14 days unless overridden).
The reminder log is append-only and doubles as the once-per-day guard.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core.config import BillingConfig
from core.models import ReminderLog, ReminderSettings, ReminderStatus
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class ReminderService:
    """Service for overdue reminder settings and history."""

    def __init__(self, postgres: PostgresClient, config: BillingConfig | None = None):
        self.postgres = postgres
        self.config = config or BillingConfig()

    def get_settings(self) -> ReminderSettings:
        """Current user's settings, or defaults if none are stored."""
        row = self.postgres.execute_single(
            """
            SELECT enabled, intervals, email_subject, email_template, cc_email
            FROM reminder_settings
            WHERE user_id = %s
            """,
            (get_current_user_id(),)
        )

        if row is None:
            return ReminderSettings(intervals=self.config.reminder_intervals)

        return ReminderSettings.model_validate(row)

    def save_settings(self, settings: ReminderSettings) -> ReminderSettings:
        """Create or replace the current user's settings."""
        row = self.postgres.execute_returning(
            """
            INSERT INTO reminder_settings (
                user_id, enabled, intervals, email_subject, email_template, cc_email, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (user_id) DO UPDATE SET
                enabled = EXCLUDED.enabled,
                intervals = EXCLUDED.intervals,
                email_subject = EXCLUDED.email_subject,
                email_template = EXCLUDED.email_template,
                cc_email = EXCLUDED.cc_email,
                updated_at = EXCLUDED.updated_at
            RETURNING enabled, intervals, email_subject, email_template, cc_email
            """,
            (
                get_current_user_id(),
                settings.enabled,
                Json(settings.intervals),
                settings.email_subject,
                settings.email_template,
                settings.cc_email,
                now_utc(),
            )
        )[0]

        return ReminderSettings.model_validate(row)

    def was_sent_today(self, invoice_id: UUID, today: date) -> bool:
        """Whether a reminder for this invoice was already attempted today (UTC)."""
        start = datetime.combine(today, time.min, tzinfo=timezone.utc)
        count = self.postgres.execute_scalar(
            """
            SELECT COUNT(*) FROM reminder_logs
            WHERE invoice_id = %s AND sent_at >= %s AND sent_at < %s
            """,
            (invoice_id, start, start + timedelta(days=1))
        )
        return bool(count)

    def log_reminder(
        self,
        invoice_id: UUID,
        days_overdue: int,
        recipient_email: str,
        status: ReminderStatus,
        error_message: str | None = None,
    ) -> ReminderLog:
        """Append a reminder attempt to the log."""
        row = self.postgres.execute_returning(
            """
            INSERT INTO reminder_logs (
                id, user_id, invoice_id, days_overdue, recipient_email,
                status, error_message, sent_at
            ) VALUES (
                %(id)s, %(user_id)s, %(invoice_id)s, %(days_overdue)s, %(recipient_email)s,
                %(status)s, %(error_message)s, %(sent_at)s
            )
            RETURNING *
            """,
            {
                "id": uuid4(),
                "user_id": get_current_user_id(),
                "invoice_id": invoice_id,
                "days_overdue": days_overdue,
                "recipient_email": recipient_email,
                "status": status.value,
                "error_message": error_message,
                "sent_at": now_utc(),
            }
        )[0]

        return ReminderLog.model_validate(row)

    def list_for_invoice(self, invoice_id: UUID) -> list[ReminderLog]:
        """Reminder history of an invoice, newest first."""
        rows = self.postgres.execute(
            """
            SELECT * FROM reminder_logs
            WHERE invoice_id = %s
            ORDER BY sent_at DESC
            """,
            (invoice_id,)
        )

        return [ReminderLog.model_validate(row) for row in rows]
