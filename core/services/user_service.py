"""Sender profile lookup for PDFs and emails."""

from uuid import UUID

from clients.postgres_client import PostgresClient
from core.models import UserProfile


class UserService:
    """Read-only access to account owner profiles."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def get_profile(self, user_id: UUID) -> UserProfile | None:
        row = self.postgres.execute_single(
            """
            SELECT id, email, name, company_name, company_address, tax_id
            FROM users
            WHERE id = %s
            """,
            (user_id,)
        )

        if row is None:
            return None

        return UserProfile.model_validate(row)
