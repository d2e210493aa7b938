"""B2B invoice API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.api.deps import get_company_id, get_current_actor, get_db, get_optional_actor
from invoicing.auth.policy import Actor
from invoicing.config import settings
from invoicing.models.invoice import InvoiceStatus
from invoicing.schemas.b2b_invoice import (
    B2BDirection,
    B2BInvoiceCreate,
    B2BInvoiceStats,
    B2BInvoiceUpdate,
    MarkPaidRequest,
)
from invoicing.schemas.invoice import B2BInvoice, InvoiceList, serialize_invoice
from invoicing.services.b2b_invoice_service import B2BInvoiceService
from invoicing.services.invoice_queries import total_pages

router = APIRouter(prefix="/b2b-invoices", tags=["B2B Invoices"])


@router.get("", response_model=InvoiceList)
async def list_b2b_invoices(
    direction: B2BDirection = Query(default=B2BDirection.BOTH, description="sent, received or both"),
    status_filter: InvoiceStatus | None = Query(default=None, alias="status", description="Filter by status"),
    currency: str | None = Query(default=None, description="Filter by currency"),
    search: str | None = Query(default=None, description="Invoice number or company name"),
    page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
    limit: int = Query(default=settings.default_page_size, ge=1, le=100, description="Items per page"),
    company_id: int = Depends(get_company_id),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> InvoiceList:
    """List B2B invoices sent and/or received by the company, newest first."""
    invoices, total = await B2BInvoiceService(db).list_invoices(
        company_id,
        actor,
        direction=direction,
        status=status_filter,
        currency=currency,
        search=search,
        page=page,
        limit=limit,
    )
    return InvoiceList(
        items=[serialize_invoice(invoice) for invoice in invoices],
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
    )


@router.get("/stats", response_model=B2BInvoiceStats)
async def get_b2b_stats(
    company_id: int = Depends(get_company_id),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> B2BInvoiceStats:
    """Sent and received aggregates: counts per status and amounts per currency."""
    return await B2BInvoiceService(db).get_stats(company_id, actor)


@router.get("/{invoice_id}/public", response_model=B2BInvoice)
async def get_public_b2b_invoice(
    invoice_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> B2BInvoice:
    """
    View an invoice through its public link (no authentication).

    Draft invoices are not visible.
    """
    invoice = await B2BInvoiceService(db).get_public_invoice(invoice_id)
    return serialize_invoice(invoice)


@router.get("/{invoice_id}", response_model=B2BInvoice)
async def get_b2b_invoice(
    invoice_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> B2BInvoice:
    """Get a B2B invoice of the sender or registered recipient company."""
    invoice = await B2BInvoiceService(db).get_invoice(invoice_id, actor)
    return serialize_invoice(invoice)


@router.post("", response_model=B2BInvoice, status_code=status.HTTP_201_CREATED)
async def create_b2b_invoice(
    invoice_data: B2BInvoiceCreate,
    company_id: int = Depends(get_company_id),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> B2BInvoice:
    """
    Create a draft B2B invoice.

    Provide either **client_id** (address book) or **unregistered_company**.
    """
    invoice = await B2BInvoiceService(db).create_invoice(company_id, invoice_data, actor=actor)
    await db.commit()
    return serialize_invoice(invoice)


@router.put("/{invoice_id}", response_model=B2BInvoice)
async def update_b2b_invoice(
    invoice_id: UUID,
    update_data: B2BInvoiceUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> B2BInvoice:
    """Update a draft invoice; items are replaced when provided."""
    invoice = await B2BInvoiceService(db).update_invoice(invoice_id, actor, update_data)
    await db.commit()
    return serialize_invoice(invoice)


@router.patch("/{invoice_id}/send", response_model=B2BInvoice)
async def send_b2b_invoice(
    invoice_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> B2BInvoice:
    """Send a draft invoice to the recipient."""
    invoice = await B2BInvoiceService(db).send_invoice(invoice_id, actor)
    await db.commit()
    return serialize_invoice(invoice)


@router.patch("/{invoice_id}/confirm", response_model=B2BInvoice)
async def confirm_b2b_invoice(
    invoice_id: UUID,
    actor: Actor = Depends(get_optional_actor),
    db: AsyncSession = Depends(get_db),
) -> B2BInvoice:
    """
    Recipient confirms a sent invoice.

    Available without authentication through the public link. A bill is
    created for the sender company.
    """
    invoice = await B2BInvoiceService(db).confirm_invoice(invoice_id, actor)
    await db.commit()
    return serialize_invoice(invoice)


@router.patch("/{invoice_id}/mark-paid", response_model=B2BInvoice)
async def mark_b2b_invoice_paid(
    invoice_id: UUID,
    payment: MarkPaidRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> B2BInvoice:
    """Sender marks a confirmed invoice as paid; the bill follows."""
    invoice = await B2BInvoiceService(db).mark_paid(invoice_id, actor, payment.transaction_hash if payment else None)
    await db.commit()
    return serialize_invoice(invoice)


@router.patch("/{invoice_id}/cancel", response_model=B2BInvoice)
async def cancel_b2b_invoice(
    invoice_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> B2BInvoice:
    """Cancel an unpaid invoice; its bill is removed."""
    invoice = await B2BInvoiceService(db).cancel_invoice(invoice_id, actor)
    await db.commit()
    return serialize_invoice(invoice)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_b2b_invoice(
    invoice_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Delete a draft invoice."""
    await B2BInvoiceService(db).delete_invoice(invoice_id, actor)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
