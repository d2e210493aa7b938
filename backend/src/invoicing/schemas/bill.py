"""Pydantic schemas for bills."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from invoicing.models.bill import BillStatus


class Bill(BaseModel):
    """Schema for returning bill data."""

    id: int
    uuid: UUID
    company_id: int
    invoice_id: int
    status: BillStatus
    paid_at: datetime | None
    transaction_hash: str | None
    extra_metadata: dict[str, Any] | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PayBillsRequest(BaseModel):
    """Schema for paying several bills at once."""

    bill_ids: list[UUID] = Field(..., min_length=1, description="UUIDs of the bills to pay")
    transaction_hash: str | None = Field(default=None, max_length=255, description="Payment reference")
