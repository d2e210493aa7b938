"""Invoice line item API endpoints (payroll and B2B invoices)."""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.api.deps import get_current_actor, get_db
from invoicing.auth.policy import Actor
from invoicing.schemas.invoice import Invoice, serialize_invoice
from invoicing.schemas.item import InvoiceItem, InvoiceItemCreate, InvoiceItemReorder, InvoiceItemReplace, InvoiceItemUpdate
from invoicing.services.invoice_item_service import InvoiceItemService

router = APIRouter(prefix="/invoices/{invoice_id}/items", tags=["Invoice Items"])


@router.get("", response_model=list[InvoiceItem])
async def list_items(
    invoice_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> list[InvoiceItem]:
    """List the items of an invoice in display order."""
    items = await InvoiceItemService(db).list_items(invoice_id, actor)
    return [InvoiceItem.model_validate(item) for item in items]


@router.post("", response_model=InvoiceItem, status_code=status.HTTP_201_CREATED)
async def add_item(
    invoice_id: UUID,
    item_data: InvoiceItemCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> InvoiceItem:
    """
    Add an item to a draft invoice.

    Invoice subtotal, tax and total are recomputed in the same transaction.
    """
    item = await InvoiceItemService(db).add_item(invoice_id, actor, item_data)
    await db.commit()
    return InvoiceItem.model_validate(item)


@router.put("/reorder", response_model=list[InvoiceItem])
async def reorder_items(
    invoice_id: UUID,
    reorder_data: InvoiceItemReorder,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> list[InvoiceItem]:
    """Set display positions; values are stored as given."""
    items = await InvoiceItemService(db).reorder_items(invoice_id, actor, reorder_data.items)
    await db.commit()
    return [InvoiceItem.model_validate(item) for item in items]


@router.put("", response_model=Invoice)
async def replace_items(
    invoice_id: UUID,
    replace_data: InvoiceItemReplace,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Replace every item of a draft invoice; returns the recomputed invoice."""
    invoice = await InvoiceItemService(db).replace_items(invoice_id, actor, replace_data.items)
    await db.commit()
    return serialize_invoice(invoice)


@router.put("/{item_id}", response_model=InvoiceItem)
async def update_item(
    invoice_id: UUID,
    item_id: int,
    item_data: InvoiceItemUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> InvoiceItem:
    """Update one item of a draft invoice."""
    item = await InvoiceItemService(db).update_item(invoice_id, item_id, actor, item_data)
    await db.commit()
    return InvoiceItem.model_validate(item)


@router.delete("/{item_id}", response_model=Invoice)
async def delete_item(
    invoice_id: UUID,
    item_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Remove one item from a draft invoice; returns the recomputed invoice."""
    invoice = await InvoiceItemService(db).delete_item(invoice_id, item_id, actor)
    await db.commit()
    return serialize_invoice(invoice)
