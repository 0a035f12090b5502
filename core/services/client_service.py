"""
Client service.

Clients are invoice recipients. Their VAT number and tax-exempt flag decide
whether an invoice is taxed or reverse charged.
"""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.models import Client, ClientCreate, ClientUpdate
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {
    "name", "email", "company_name", "address", "phone",
    "vat_number", "tax_exempt", "notes"
}


class ClientService:
    """Service for client operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def create(self, data: ClientCreate) -> Client:
        """
        Create a new client.

        Args:
            data: Client creation data

        Returns:
            Created client
        """
        user_id = get_current_user_id()
        now = now_utc()

        row = self.postgres.execute_returning(
            """
            INSERT INTO clients (
                id, user_id, name, email, company_name, address, phone,
                vat_number, tax_exempt, notes, created_at, updated_at
            ) VALUES (
                %(id)s, %(user_id)s, %(name)s, %(email)s, %(company_name)s, %(address)s, %(phone)s,
                %(vat_number)s, %(tax_exempt)s, %(notes)s, %(created_at)s, %(updated_at)s
            )
            RETURNING *
            """,
            {
                "id": uuid4(),
                "user_id": user_id,
                **data.model_dump(),
                "created_at": now,
                "updated_at": now,
            }
        )[0]

        client = Client.model_validate(row)

        self.audit.log_change(
            entity_type="client",
            entity_id=client.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)}
        )

        return client

    def get_by_id(self, client_id: UUID) -> Client | None:
        """Client if found and not deleted, None otherwise."""
        row = self.postgres.execute_single(
            "SELECT * FROM clients WHERE id = %s AND deleted_at IS NULL",
            (client_id,)
        )

        if row is None:
            return None

        return Client.model_validate(row)

    def update(self, client_id: UUID, data: ClientUpdate) -> Client:
        """
        Update client fields.

        Tax status changes affect invoices computed from now on; existing
        invoices keep the totals they were issued with.

        Raises:
            ValueError: If client not found
        """
        current = self.get_by_id(client_id)
        if current is None:
            raise ValueError(f"Client {client_id} not found")

        updates = {
            k: v for k, v in data.model_dump(exclude_unset=True).items()
            if k in _UPDATABLE_COLUMNS
        }
        if not updates:
            return current

        set_parts = [f"{field} = %({field})s" for field in updates]
        set_parts.append("updated_at = %(updated_at)s")

        row = self.postgres.execute_returning(
            f"""
            UPDATE clients
            SET {', '.join(set_parts)}
            WHERE id = %(id)s AND deleted_at IS NULL
            RETURNING *
            """,
            {**updates, "updated_at": now_utc(), "id": client_id}
        )[0]

        updated = Client.model_validate(row)

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json")
        )
        if changes:
            self.audit.log_change(
                entity_type="client",
                entity_id=client_id,
                action=AuditAction.UPDATE,
                changes=changes
            )

        return updated

    def delete(self, client_id: UUID) -> bool:
        """
        Soft delete a client.

        Returns:
            True if deleted, False if not found
        """
        current = self.get_by_id(client_id)
        if current is None:
            return False

        now = now_utc()
        self.postgres.execute(
            "UPDATE clients SET deleted_at = %s, updated_at = %s WHERE id = %s",
            (now, now, client_id)
        )

        self.audit.log_change(
            entity_type="client",
            entity_id=client_id,
            action=AuditAction.DELETE,
            changes={"deleted": current.model_dump(mode="json")}
        )

        return True

    def list_all(self, limit: int = 50, offset: int = 0) -> list[Client]:
        """Clients ordered by name."""
        rows = self.postgres.execute(
            """
            SELECT * FROM clients
            WHERE deleted_at IS NULL
            ORDER BY name ASC
            LIMIT %s OFFSET %s
            """,
            (limit, offset)
        )

        return [Client.model_validate(row) for row in rows]
