"""Scoped invoice lookups and pagination shared by the invoice services."""
import math
from typing import Type
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.auth.policy import Actor, InvoiceAction, can_view, is_public_action
from invoicing.exceptions import ForbiddenError, NotFoundError
from invoicing.models.invoice import Invoice
from invoicing.schemas.error import ErrorCode


def ensure_member(actor: Actor, company_id: int) -> None:
    """
    Require the actor to belong to ``company_id``.

    Raises:
        ForbiddenError: If the actor is not a member of the company
    """
    if not actor.is_member(company_id):
        raise ForbiddenError("You do not have access to this company")


async def get_invoice_for_actor(
    db: AsyncSession,
    invoice_uuid: UUID,
    actor: Actor,
    invoice_cls: Type[Invoice] = Invoice,
    action: InvoiceAction = InvoiceAction.VIEW,
) -> Invoice:
    """
    Load an invoice the actor is allowed to see.

    Absence and lack of visibility both raise NotFound so callers cannot
    probe for invoices of other companies. Public actions (B2B confirm)
    skip the visibility check.

    Args:
        db: Database session
        invoice_uuid: Invoice UUID
        actor: Caller identity
        invoice_cls: Invoice, PayrollInvoice or B2BInvoice
        action: Action the invoice is loaded for

    Returns:
        Invoice with items and bill loaded

    Raises:
        NotFoundError: If the invoice does not exist or is outside the actor's scope
    """
    result = await db.execute(
        select(invoice_cls).where(invoice_cls.uuid == invoice_uuid).execution_options(populate_existing=True)
    )
    invoice = result.scalar_one_or_none()
    if invoice is None or not (can_view(actor, invoice) or is_public_action(invoice, action)):
        raise NotFoundError("Invoice not found", code=ErrorCode.INVOICE_NOT_FOUND)
    return invoice


async def paginate(db: AsyncSession, query: Select, page: int, limit: int) -> tuple[list, int]:
    """
    Run ``query`` for one page.

    Returns:
        Tuple of (rows on the page, total matching rows)
    """
    count_result = await db.execute(select(func.count()).select_from(query.order_by(None).subquery()))
    total = count_result.scalar() or 0

    result = await db.execute(query.offset((page - 1) * limit).limit(limit))
    return list(result.scalars().unique().all()), total


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
