"""
Line item service for invoice line items.

amount is derived: quantity * rate rounded to the invoice currency. It is
written on insert and rewritten whenever quantity or rate change, never
taken from the caller. Invoice totals are recomputed by InvoiceService.
"""

import logging
from decimal import Decimal
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.models import LineItem, LineItemCreate, LineItemUpdate
from core.totals import line_amount
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {"description", "quantity", "rate", "sort_order"}


class LineItemService:
    """Service for line item operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def create_many(
        self,
        invoice_id: UUID,
        items: list[LineItemCreate],
        decimals: int = 2
    ) -> list[LineItem]:
        """
        Insert line items for an invoice, in the given order.

        Call inside the invoice's transaction so the invoice and its lines
        commit together.

        Args:
            invoice_id: Invoice the lines belong to
            items: Lines to insert
            decimals: Currency precision for the derived amount

        Returns:
            Created line items
        """
        user_id = get_current_user_id()
        now = now_utc()
        created = []

        for position, item in enumerate(items):
            row = self.postgres.execute_returning(
                """
                INSERT INTO invoice_line_items (
                    id, user_id, invoice_id, description, quantity, rate, amount,
                    sort_order, created_at, updated_at
                ) VALUES (
                    %(id)s, %(user_id)s, %(invoice_id)s, %(description)s, %(quantity)s,
                    %(rate)s, %(amount)s, %(sort_order)s, %(created_at)s, %(updated_at)s
                )
                RETURNING *
                """,
                {
                    "id": uuid4(),
                    "user_id": user_id,
                    "invoice_id": invoice_id,
                    "description": item.description,
                    "quantity": item.quantity,
                    "rate": item.rate,
                    "amount": line_amount(item.quantity, item.rate, decimals),
                    "sort_order": position if item.sort_order is None else item.sort_order,
                    "created_at": now,
                    "updated_at": now,
                }
            )[0]
            created.append(LineItem.model_validate(row))

        return created

    def get_by_id(self, line_item_id: UUID) -> LineItem | None:
        """Line item if found and not deleted, None otherwise."""
        row = self.postgres.execute_single(
            "SELECT * FROM invoice_line_items WHERE id = %s AND deleted_at IS NULL",
            (line_item_id,)
        )

        if row is None:
            return None

        return LineItem.model_validate(row)

    def list_for_invoice(self, invoice_id: UUID) -> list[LineItem]:
        """Line items of an invoice in display order."""
        rows = self.postgres.execute(
            """
            SELECT * FROM invoice_line_items
            WHERE invoice_id = %s AND deleted_at IS NULL
            ORDER BY sort_order ASC, created_at ASC
            """,
            (invoice_id,)
        )

        return [LineItem.model_validate(row) for row in rows]

    def replace(
        self,
        invoice_id: UUID,
        items: list[LineItemCreate],
        decimals: int = 2
    ) -> list[LineItem]:
        """Soft delete an invoice's current lines and insert a new set."""
        now = now_utc()
        self.postgres.execute(
            """
            UPDATE invoice_line_items
            SET deleted_at = %s, updated_at = %s
            WHERE invoice_id = %s AND deleted_at IS NULL
            """,
            (now, now, invoice_id)
        )
        return self.create_many(invoice_id, items, decimals)

    def update(self, line_item_id: UUID, data: LineItemUpdate, decimals: int = 2) -> LineItem:
        """
        Update line item fields, recomputing amount.

        Raises:
            ValueError: If line item not found
        """
        current = self.get_by_id(line_item_id)
        if current is None:
            raise ValueError(f"Line item {line_item_id} not found")

        updates = {
            k: v for k, v in data.model_dump(exclude_none=True).items()
            if k in _UPDATABLE_COLUMNS
        }
        if not updates:
            return current

        quantity: Decimal = updates.get("quantity", current.quantity)
        rate: Decimal = updates.get("rate", current.rate)
        updates["amount"] = line_amount(quantity, rate, decimals)

        set_parts = [f"{field} = %({field})s" for field in updates]
        set_parts.append("updated_at = %(updated_at)s")

        row = self.postgres.execute_returning(
            f"""
            UPDATE invoice_line_items
            SET {', '.join(set_parts)}
            WHERE id = %(id)s AND deleted_at IS NULL
            RETURNING *
            """,
            {**updates, "updated_at": now_utc(), "id": line_item_id}
        )[0]

        updated = LineItem.model_validate(row)

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json")
        )
        if changes:
            self.audit.log_change(
                entity_type="line_item",
                entity_id=line_item_id,
                action=AuditAction.UPDATE,
                changes=changes
            )

        return updated
