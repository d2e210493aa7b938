"""Pydantic schemas for B2B invoice requests and stats."""
import enum
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from invoicing.schemas.item import InvoiceItemCreate


class B2BDirection(str, enum.Enum):
    """Which side of a B2B invoice the listing company is on."""

    SENT = "sent"
    RECEIVED = "received"
    BOTH = "both"


class UnregisteredCompany(BaseModel):
    """Recipient details for a company that is not in the address book."""

    company_name: str = Field(..., min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    address: str | None = Field(default=None, max_length=255)
    tax_id: str | None = Field(default=None, max_length=64)
    contact_name: str | None = Field(default=None, max_length=255)
    cc_emails: list[str] | None = None
    extra_metadata: dict[str, Any] | None = None


class B2BInvoiceFields(BaseModel):
    """Editable fields of a B2B invoice."""

    issue_date: datetime | None = Field(default=None, description="Issue date (defaults to now)")
    due_date: datetime | None = Field(default=None, description="Due date (defaults to issue date + 30 days)")
    currency: str = Field(default="USD", min_length=3, max_length=3, description="ISO 4217 currency code")
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, description="Invoice-level tax percentage")
    discount: Decimal = Field(default=Decimal("0"), ge=0, description="Invoice-level absolute discount")
    payment_network: dict[str, Any] | None = None
    payment_token: dict[str, Any] | None = None
    payment_wallet_address: str | None = Field(default=None, max_length=255)
    email_to: str | None = Field(default=None, max_length=255)
    email_cc: list[str] | None = None
    email_bcc: list[str] | None = None
    email_subject: str | None = Field(default=None, max_length=255)
    email_body: str | None = None
    memo: str | None = None
    footer: str | None = None
    terms: str | None = None
    extra_metadata: dict[str, Any] | None = None


class B2BInvoiceCreate(B2BInvoiceFields):
    """
    Schema for creating a B2B invoice.

    Exactly one recipient source is used: ``client_id`` (address book) takes
    precedence over ``unregistered_company``.
    """

    client_id: UUID | None = Field(default=None, description="Address-book client UUID")
    unregistered_company: UnregisteredCompany | None = None
    from_details: dict[str, Any] | None = Field(default=None, description="Overrides the sender snapshot")
    items: list[InvoiceItemCreate] = Field(..., min_length=1, description="Invoice line items")


class B2BInvoiceUpdate(BaseModel):
    """Schema for updating a draft B2B invoice; only provided fields change."""

    due_date: datetime | None = None
    from_details: dict[str, Any] | None = None
    tax_rate: Decimal | None = Field(default=None, ge=0)
    discount: Decimal | None = Field(default=None, ge=0)
    payment_network: dict[str, Any] | None = None
    payment_token: dict[str, Any] | None = None
    payment_wallet_address: str | None = Field(default=None, max_length=255)
    email_to: str | None = Field(default=None, max_length=255)
    email_cc: list[str] | None = None
    email_bcc: list[str] | None = None
    email_subject: str | None = Field(default=None, max_length=255)
    email_body: str | None = None
    memo: str | None = None
    footer: str | None = None
    terms: str | None = None
    extra_metadata: dict[str, Any] | None = None
    items: list[InvoiceItemCreate] | None = Field(default=None, min_length=1)


class MarkPaidRequest(BaseModel):
    """Optional payment reference when the sender marks an invoice paid."""

    transaction_hash: str | None = Field(default=None, max_length=255)


class DirectionStats(BaseModel):
    """Aggregates over one side (sent or received) of a company's B2B invoices."""

    total: int
    by_status: dict[str, int]
    total_amount: Decimal
    total_amount_by_currency: dict[str, Decimal]


class B2BInvoiceStats(BaseModel):
    """Sent and received B2B invoice aggregates."""

    sent: DirectionStats
    received: DirectionStats
