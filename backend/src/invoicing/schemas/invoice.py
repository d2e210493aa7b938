"""Pydantic schemas for invoices.

Read schemas form a discriminated union on ``invoice_type`` so each variant
only exposes its own fields.
"""
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from invoicing.models.invoice import InvoiceStatus
from invoicing.schemas.bill import Bill
from invoicing.schemas.item import InvoiceItem, InvoiceItemCreate


class InvoiceBase(BaseModel):
    """Fields shared by both invoice variants."""

    id: int
    uuid: UUID
    invoice_number: str
    status: InvoiceStatus
    issue_date: datetime
    due_date: datetime
    sent_at: datetime | None
    reviewed_at: datetime | None
    confirmed_at: datetime | None
    paid_at: datetime | None
    currency: str
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount: Decimal
    total: Decimal
    from_details: dict[str, Any]
    to_details: dict[str, Any]
    email_to: str | None
    email_cc: list[str] | None
    email_bcc: list[str] | None
    payment_network: dict[str, Any] | None
    payment_token: dict[str, Any] | None
    payment_wallet_address: str | None
    memo: str | None
    footer: str | None
    terms: str | None
    extra_metadata: dict[str, Any] | None
    is_auto_generated: bool
    schedule_id: int | None
    items: list[InvoiceItem]
    bill: Bill | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PayrollInvoice(InvoiceBase):
    """Schema for returning payroll invoice data."""

    invoice_type: Literal["EMPLOYEE"]
    payroll_id: int | None
    employee_id: int | None
    company_id: int | None
    employee_email: str | None


class B2BInvoice(InvoiceBase):
    """Schema for returning B2B invoice data."""

    invoice_type: Literal["B2B"]
    from_company_id: int | None
    to_company_id: int | None
    client_id: int | None
    to_company_name: str | None
    to_company_email: str | None
    to_company_address: str | None
    to_company_tax_id: str | None
    to_company_contact_name: str | None
    email_subject: str | None
    email_body: str | None


Invoice = Annotated[Union[PayrollInvoice, B2BInvoice], Field(discriminator="invoice_type")]


def serialize_invoice(invoice: Any) -> PayrollInvoice | B2BInvoice:
    """Validate an ORM invoice into the schema of its variant."""
    if invoice.invoice_type == "B2B":
        return B2BInvoice.model_validate(invoice)
    return PayrollInvoice.model_validate(invoice)


class PayrollInvoiceCreate(BaseModel):
    """Schema for creating a draft payroll invoice."""

    payroll_id: int = Field(..., description="Payroll the invoice bills for")
    issue_date: datetime | None = Field(default=None, description="Issue date (defaults to now)")
    due_date: datetime | None = Field(default=None, description="Due date (defaults to issue date + 30 days)")
    currency: str | None = Field(default=None, min_length=3, max_length=3, description="ISO 4217 currency code")
    items: list[InvoiceItemCreate] = Field(..., min_length=1, description="Invoice line items")
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, description="Invoice-level tax percentage")
    discount: Decimal = Field(default=Decimal("0"), ge=0, description="Invoice-level absolute discount")
    memo: str | None = None
    footer: str | None = None
    terms: str | None = None
    extra_metadata: dict[str, Any] | None = None


class PayrollInvoiceUpdate(BaseModel):
    """Payment details the employee may change while reviewing an invoice."""

    address: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, max_length=120)
    country: str | None = Field(default=None, max_length=120)
    postal_code: str | None = Field(default=None, max_length=32)
    wallet_address: str | None = Field(default=None, max_length=255)
    network: dict[str, Any] | None = None
    token: dict[str, Any] | None = None


class InvoiceList(BaseModel):
    """Schema for paginated invoice list."""

    items: list[Invoice]
    total: int
    page: int
    limit: int
    total_pages: int


class PayrollInvoiceStats(BaseModel):
    """Aggregates over a company's payroll invoices."""

    total: int
    by_status: dict[str, int]
    total_amount: Decimal
    due_this_month: int
