"""Invoice sender profile."""

from uuid import UUID

from pydantic import BaseModel


class UserProfile(BaseModel):
    """The account owner shown as sender on PDFs and emails."""

    id: UUID
    email: str
    name: str | None = None
    company_name: str | None = None
    company_address: str | None = None
    tax_id: str | None = None

    model_config = {"from_attributes": True}

    @property
    def display_name(self) -> str:
        return self.company_name or self.name or self.email
