"""Pydantic schemas for invoice schedules."""
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from invoicing.models.schedule import ScheduleFrequency
from invoicing.schemas.item import InvoiceItemCreate


class ScheduleTiming(BaseModel):
    """Recurrence fields shared by schedule requests."""

    frequency: ScheduleFrequency = Field(default=ScheduleFrequency.MONTHLY)
    day_of_month: int | None = Field(default=None, ge=1, le=31, description="Billing day for MONTHLY")
    day_of_week: int | None = Field(default=None, ge=0, le=6, description="Billing weekday for WEEKLY (0 = Sunday)")
    generate_days_before: int = Field(default=0, ge=0, le=365, description="Generate this many days early")
    auto_send: bool = Field(default=False, description="Send generated B2B invoices immediately")
    extra_metadata: dict[str, Any] | None = None


class PayrollScheduleCreate(ScheduleTiming):
    """Schema for creating the schedule of a payroll."""


class B2BInvoiceTemplate(BaseModel):
    """Snapshot used to stamp each scheduled B2B invoice."""

    items: list[InvoiceItemCreate] = Field(..., min_length=1)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    due_days_after_generation: int = Field(default=30, ge=0, le=365)
    payment_network: dict[str, Any] | None = None
    payment_token: dict[str, Any] | None = None
    payment_wallet_address: str | None = None
    email_to: str | None = None
    email_cc: list[str] | None = None
    email_bcc: list[str] | None = None
    email_subject: str | None = None
    email_body: str | None = None
    memo: str | None = None
    footer: str | None = None
    terms: str | None = None


class B2BScheduleCreate(ScheduleTiming):
    """Schema for creating a recurring B2B schedule for a client."""

    client_id: UUID = Field(..., description="Address-book client UUID")
    invoice_template: B2BInvoiceTemplate


class ScheduleUpdate(BaseModel):
    """Schema for updating a schedule; only provided fields change."""

    frequency: ScheduleFrequency | None = None
    day_of_month: int | None = Field(default=None, ge=1, le=31)
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    generate_days_before: int | None = Field(default=None, ge=0, le=365)
    auto_send: bool | None = None
    invoice_template: B2BInvoiceTemplate | None = None
    extra_metadata: dict[str, Any] | None = None

    @model_validator(mode="after")
    def check_not_empty(self) -> "ScheduleUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class Schedule(BaseModel):
    """Schema for returning schedule data."""

    id: int
    uuid: UUID
    company_id: int
    payroll_id: int | None
    client_id: int | None
    frequency: ScheduleFrequency
    day_of_month: int | None
    day_of_week: int | None
    generate_days_before: int
    auto_send: bool
    is_active: bool
    next_generate_date: datetime
    last_generated_at: datetime | None
    invoice_template: dict[str, Any] | None
    extra_metadata: dict[str, Any] | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
