"""Bill API endpoints."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.api.deps import get_company_id, get_current_actor, get_db
from invoicing.auth.policy import Actor
from invoicing.models.bill import BillStatus
from invoicing.schemas.bill import Bill, PayBillsRequest
from invoicing.services.bill_service import BillService
from invoicing.services.invoice_queries import ensure_member

router = APIRouter(prefix="/bills", tags=["Bills"])


@router.get("", response_model=list[Bill])
async def list_bills(
    status_filter: BillStatus | None = Query(default=None, alias="status", description="Filter by status"),
    company_id: int = Depends(get_company_id),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> list[Bill]:
    """List the bills of the company, newest first."""
    ensure_member(actor, company_id)
    return await BillService(db).list_bills(company_id, status=status_filter)


@router.post("/pay", response_model=list[Bill])
async def pay_bills(
    pay_data: PayBillsRequest,
    company_id: int = Depends(get_company_id),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> list[Bill]:
    """
    Pay several bills at once.

    Every bill is marked **paid** and its invoice is settled. Nothing
    changes when any bill is missing or already paid.
    """
    bills = await BillService(db).pay_bills(actor, company_id, pay_data.bill_ids, pay_data.transaction_hash)
    await db.commit()
    return bills
