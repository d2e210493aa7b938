"""Pydantic schemas for invoice items."""
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class InvoiceItemBase(BaseModel):
    """Fields shared by item create and read schemas."""

    description: str = Field(..., min_length=1, max_length=500, description="Line item description")
    quantity: Decimal = Field(default=Decimal("1"), ge=0, description="Quantity (up to 8 decimal places)")
    unit_price: Decimal = Field(..., description="Price per unit (up to 8 decimal places)")
    unit: str | None = Field(default=None, max_length=32, description="Unit label (hour, month, piece...)")
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, description="Tax percentage applied after discount")
    discount: Decimal = Field(default=Decimal("0"), ge=0, description="Absolute discount on the item subtotal")
    extra_metadata: dict[str, Any] | None = Field(default=None, description="Extensible custom fields")


class InvoiceItemCreate(InvoiceItemBase):
    """Schema for adding an item to an invoice."""

    order: int | None = Field(default=None, description="Display position; appended last when omitted")


class InvoiceItemUpdate(BaseModel):
    """Schema for updating an item; only provided fields change."""

    description: str | None = Field(default=None, min_length=1, max_length=500)
    quantity: Decimal | None = Field(default=None, ge=0)
    unit_price: Decimal | None = None
    unit: str | None = Field(default=None, max_length=32)
    tax_rate: Decimal | None = Field(default=None, ge=0)
    discount: Decimal | None = Field(default=None, ge=0)
    order: int | None = None
    extra_metadata: dict[str, Any] | None = None


class ItemOrder(BaseModel):
    """New display position of one item."""

    id: int = Field(..., description="Item ID")
    order: int = Field(..., description="Display position (gaps allowed)")


class InvoiceItemReorder(BaseModel):
    """Schema for reordering items."""

    items: list[ItemOrder] = Field(..., min_length=1)


class InvoiceItemReplace(BaseModel):
    """Schema for replacing every item of an invoice."""

    items: list[InvoiceItemCreate] = Field(default_factory=list)


class InvoiceItem(InvoiceItemBase):
    """Schema for returning item data."""

    id: int
    uuid: UUID
    total: Decimal
    order: int

    model_config = ConfigDict(from_attributes=True)
