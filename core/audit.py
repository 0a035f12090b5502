"""
Change history for invoices, line items, clients, schedules and deliveries.

Services write one audit_log row per mutation inside the same transaction
as the mutation, so a rolled-back invoice leaves no history behind. Rows
are never updated. The owner is taken from the user context unless the
caller names one (jobs acting for a schedule's owner).

audit_log carries no RLS policy.
"""

from enum import Enum
from uuid import UUID, uuid4
from typing import Any

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

_IGNORED_FIELDS = frozenset({"updated_at"})


class AuditAction(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Field-level diff of two JSON-ready snapshots of an entity.

    A field missing on one side is diffed against None. updated_at is
    ignored unless exclude_fields replaces the default set.

    Returns:
        {field: {"old": ..., "new": ...}} for every field that differs
    """
    ignored = _IGNORED_FIELDS if exclude_fields is None else exclude_fields
    return {
        field: {"old": old.get(field), "new": new.get(field)}
        for field in sorted(old.keys() | new.keys())
        if field not in ignored and old.get(field) != new.get(field)
    }


class AuditLogger:
    """
    Writes audit_log rows.

    Snapshots should come from model_dump(mode="json"), which turns
    Decimal amounts, dates and UUIDs into strings the JSONB column accepts:

        audit.log_change(
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.UPDATE,
            changes=compute_changes(before.model_dump(mode="json"), after.model_dump(mode="json")),
        )
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def log_change(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
        user_id: UUID | None = None
    ) -> None:
        """
        Record one mutation.

        changes is {"created": snapshot} for CREATE, a compute_changes diff
        for UPDATE, and {"deleted": snapshot} for DELETE.

        Raises:
            RuntimeError: If no user_id is given and no user context is set
        """
        owner = user_id if user_id is not None else get_current_user_id()

        self.postgres.execute(
            """
            INSERT INTO audit_log (id, user_id, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (uuid4(), owner, entity_type, entity_id, action.value, Json(changes), now_utc())
        )
