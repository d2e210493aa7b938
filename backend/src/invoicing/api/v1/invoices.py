"""Payroll invoice API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.api.deps import get_company_id, get_current_actor, get_db
from invoicing.auth.policy import Actor
from invoicing.config import settings
from invoicing.models.invoice import InvoiceStatus
from invoicing.schemas.invoice import (
    InvoiceList,
    PayrollInvoice,
    PayrollInvoiceCreate,
    PayrollInvoiceStats,
    PayrollInvoiceUpdate,
    serialize_invoice,
)
from invoicing.services.invoice_queries import total_pages
from invoicing.services.invoice_service import InvoiceService

router = APIRouter(prefix="/invoices", tags=["Invoices"])


def _page(invoices: list, total: int, page: int, limit: int) -> InvoiceList:
    return InvoiceList(
        items=[serialize_invoice(invoice) for invoice in invoices],
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
    )


@router.get("", response_model=InvoiceList)
async def list_invoices(
    status_filter: InvoiceStatus | None = Query(default=None, alias="status", description="Filter by status"),
    payroll_id: int | None = Query(default=None, description="Filter by payroll"),
    currency: str | None = Query(default=None, description="Filter by currency"),
    search: str | None = Query(default=None, description="Invoice number, employee email or name"),
    page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
    limit: int = Query(default=settings.default_page_size, ge=1, le=100, description="Items per page"),
    company_id: int = Depends(get_company_id),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> InvoiceList:
    """
    List the payroll invoices of a company.

    Returns invoices ordered by creation date (newest first).
    """
    invoices, total = await InvoiceService(db).list_invoices(
        company_id,
        actor,
        status=status_filter,
        payroll_id=payroll_id,
        currency=currency,
        search=search,
        page=page,
        limit=limit,
    )
    return _page(invoices, total, page, limit)


@router.get("/employee", response_model=InvoiceList)
async def list_employee_invoices(
    status_filter: InvoiceStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.default_page_size, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> InvoiceList:
    """List the payroll invoices addressed to the authenticated employee."""
    invoices, total = await InvoiceService(db).list_employee_invoices(
        actor, status=status_filter, page=page, limit=limit
    )
    return _page(invoices, total, page, limit)


@router.get("/stats", response_model=PayrollInvoiceStats)
async def get_invoice_stats(
    company_id: int = Depends(get_company_id),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> PayrollInvoiceStats:
    """Counts per status, total amount and invoices due this month."""
    return await InvoiceService(db).get_stats(company_id, actor)


@router.get("/number/{invoice_number}", response_model=PayrollInvoice)
async def get_invoice_by_number(
    invoice_number: str,
    company_id: int = Depends(get_company_id),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> PayrollInvoice:
    """Get a payroll invoice of the company by its number."""
    invoice = await InvoiceService(db).get_invoice_by_number(company_id, invoice_number, actor)
    return serialize_invoice(invoice)


@router.get("/{invoice_id}", response_model=PayrollInvoice)
async def get_invoice(
    invoice_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> PayrollInvoice:
    """Get a payroll invoice visible to the caller (employer or employee)."""
    invoice = await InvoiceService(db).get_invoice(invoice_id, actor)
    return serialize_invoice(invoice)


@router.post("", response_model=PayrollInvoice, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    invoice_data: PayrollInvoiceCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> PayrollInvoice:
    """
    Create a draft payroll invoice with explicit line items.

    Totals are computed from the items; the number is drawn from the
    payroll's sequence.
    """
    invoice = await InvoiceService(db).create_invoice(actor, invoice_data)
    await db.commit()
    return serialize_invoice(invoice)


@router.post("/generate/{payroll_id}", response_model=PayrollInvoice, status_code=status.HTTP_201_CREATED)
async def generate_invoice(
    payroll_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> PayrollInvoice:
    """
    Generate this month's invoice for a payroll.

    The invoice is issued as **sent** and the employee is notified.
    Returns 409 when the payroll already has an invoice this month.
    """
    invoice = await InvoiceService(db).generate_invoice(payroll_id, actor)
    await db.commit()
    return serialize_invoice(invoice)


@router.put("/{invoice_id}", response_model=PayrollInvoice)
async def update_invoice(
    invoice_id: UUID,
    update_data: PayrollInvoiceUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> PayrollInvoice:
    """Employee updates address and payment details (sent or reviewed invoices)."""
    invoice = await InvoiceService(db).update_invoice(invoice_id, actor, update_data)
    await db.commit()
    return serialize_invoice(invoice)


@router.patch("/{invoice_id}/send", response_model=PayrollInvoice)
async def send_invoice(
    invoice_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> PayrollInvoice:
    """Send a draft invoice to the employee."""
    invoice = await InvoiceService(db).send_invoice(invoice_id, actor)
    await db.commit()
    return serialize_invoice(invoice)


@router.patch("/{invoice_id}/review", response_model=PayrollInvoice)
async def review_invoice(
    invoice_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> PayrollInvoice:
    """Employee marks a sent invoice as reviewed."""
    invoice = await InvoiceService(db).review_invoice(invoice_id, actor)
    await db.commit()
    return serialize_invoice(invoice)


@router.patch("/{invoice_id}/confirm", response_model=PayrollInvoice)
async def confirm_invoice(
    invoice_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> PayrollInvoice:
    """Employee confirms a reviewed invoice; a bill is created for the employer."""
    invoice = await InvoiceService(db).confirm_invoice(invoice_id, actor)
    await db.commit()
    return serialize_invoice(invoice)


@router.patch("/{invoice_id}/cancel", response_model=PayrollInvoice)
async def cancel_invoice(
    invoice_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> PayrollInvoice:
    """Cancel an unpaid invoice; any unpaid bill is removed."""
    invoice = await InvoiceService(db).cancel_invoice(invoice_id, actor)
    await db.commit()
    return serialize_invoice(invoice)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invoice(
    invoice_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Delete a draft invoice and its items."""
    await InvoiceService(db).delete_invoice(invoice_id, actor)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
