"""Client (invoice recipient) domain models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, EmailStr

from core.models.totals import RecipientTaxStatus


class ClientCreate(BaseModel):
    """Data required to create a client."""

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr | None = None
    company_name: str | None = Field(None, max_length=255)
    address: str | None = Field(None, max_length=1000)
    phone: str | None = Field(None, max_length=50)
    vat_number: str | None = Field(None, max_length=50)
    tax_exempt: bool = False
    notes: str | None = Field(None, max_length=10000)


class ClientUpdate(BaseModel):
    """Data that can be updated on a client. All fields optional."""

    name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None
    company_name: str | None = Field(None, max_length=255)
    address: str | None = Field(None, max_length=1000)
    phone: str | None = Field(None, max_length=50)
    vat_number: str | None = Field(None, max_length=50)
    tax_exempt: bool | None = None
    notes: str | None = Field(None, max_length=10000)


class Client(BaseModel):
    """Full client entity as stored."""

    id: UUID
    user_id: UUID
    name: str
    email: str | None
    company_name: str | None = None
    address: str | None = None
    phone: str | None = None
    vat_number: str | None = None
    tax_exempt: bool = False
    notes: str | None = None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def display_name(self) -> str:
        """Company name when set, else the contact name."""
        return self.company_name or self.name

    @property
    def tax_status(self) -> RecipientTaxStatus:
        return RecipientTaxStatus(vat_number=self.vat_number, tax_exempt=self.tax_exempt)
