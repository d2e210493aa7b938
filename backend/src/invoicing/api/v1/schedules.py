"""Invoice schedule API endpoints (payroll and B2B)."""
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.api.deps import get_company_id, get_current_actor, get_db
from invoicing.auth.policy import Actor
from invoicing.schemas.schedule import B2BScheduleCreate, PayrollScheduleCreate, Schedule, ScheduleUpdate
from invoicing.services.schedule_service import ScheduleService

router = APIRouter(tags=["Invoice Schedules"])
b2b_router = APIRouter(prefix="/b2b-invoices/schedules", tags=["B2B Invoices"])


@router.get("/payrolls/{payroll_id}/invoice-schedule", response_model=Schedule)
async def get_payroll_schedule(
    payroll_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Schedule:
    """Get the active invoice schedule of a payroll."""
    return await ScheduleService(db).get_payroll_schedule(actor, payroll_id)


@router.post(
    "/payrolls/{payroll_id}/invoice-schedule",
    response_model=Schedule,
    status_code=status.HTTP_201_CREATED,
)
async def create_payroll_schedule(
    payroll_id: int,
    schedule_data: PayrollScheduleCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Schedule:
    """
    Create the recurring invoice schedule of a payroll.

    A payroll has at most one active schedule.
    """
    schedule = await ScheduleService(db).create_payroll_schedule(actor, payroll_id, schedule_data)
    await db.commit()
    return schedule


@router.put("/invoice-schedules/{schedule_id}", response_model=Schedule)
async def update_schedule(
    schedule_id: UUID,
    update_data: ScheduleUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Schedule:
    """Update a schedule; the next generation date follows timing changes."""
    schedule = await ScheduleService(db).update_schedule(actor, schedule_id, update_data)
    await db.commit()
    return schedule


@router.patch("/invoice-schedules/{schedule_id}/toggle", response_model=Schedule)
async def toggle_schedule(
    schedule_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Schedule:
    """Pause or resume a schedule."""
    schedule = await ScheduleService(db).toggle_schedule(actor, schedule_id)
    await db.commit()
    return schedule


@router.delete("/invoice-schedules/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_schedule(
    schedule_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Delete a schedule; invoices it generated are kept."""
    await ScheduleService(db).delete_schedule(actor, schedule_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@b2b_router.get("", response_model=list[Schedule])
async def list_b2b_schedules(
    company_id: int = Depends(get_company_id),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> list[Schedule]:
    """List the recurring B2B schedules of the company."""
    return await ScheduleService(db).list_b2b_schedules(actor, company_id)


@b2b_router.post("", response_model=Schedule, status_code=status.HTTP_201_CREATED)
async def create_b2b_schedule(
    schedule_data: B2BScheduleCreate,
    company_id: int = Depends(get_company_id),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Schedule:
    """Create a recurring B2B schedule for an address-book client."""
    schedule = await ScheduleService(db).create_b2b_schedule(actor, company_id, schedule_data)
    await db.commit()
    return schedule


@b2b_router.get("/{schedule_id}", response_model=Schedule)
async def get_b2b_schedule(
    schedule_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Schedule:
    """Get a B2B schedule."""
    return await ScheduleService(db).get_schedule(actor, schedule_id)


@b2b_router.put("/{schedule_id}", response_model=Schedule)
async def update_b2b_schedule(
    schedule_id: UUID,
    update_data: ScheduleUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Schedule:
    """Update a B2B schedule or its invoice template."""
    schedule = await ScheduleService(db).update_schedule(actor, schedule_id, update_data)
    await db.commit()
    return schedule


@b2b_router.patch("/{schedule_id}/toggle", response_model=Schedule)
async def toggle_b2b_schedule(
    schedule_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Schedule:
    """Pause or resume a B2B schedule."""
    schedule = await ScheduleService(db).toggle_schedule(actor, schedule_id)
    await db.commit()
    return schedule


@b2b_router.delete("/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_b2b_schedule(
    schedule_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Delete a B2B schedule."""
    await ScheduleService(db).delete_schedule(actor, schedule_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
