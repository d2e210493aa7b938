"""Recurring invoice generation worker.

This worker runs periodically to:
1. Find active schedules whose next generation date has been reached
2. Generate the payroll or B2B invoice of each schedule
3. Move each schedule to its following generation date

Each schedule is committed on its own so one failure does not block the batch.
"""
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.auth.policy import Actor, InvoiceAction
from invoicing.database import AsyncSessionLocal
from invoicing.exceptions import ConflictError
from invoicing.integrations.notification_service import NotificationService
from invoicing.metrics import schedule_generations_total
from invoicing.models.schedule import InvoiceSchedule
from invoicing.services.b2b_invoice_service import B2BInvoiceService
from invoicing.services.invoice_service import InvoiceService
from invoicing.services.schedule_calculator import calculate_following_generate_date
from invoicing.services.schedule_service import ScheduleService
from invoicing.utils.clock import utcnow

logger = structlog.get_logger(__name__)


async def process_due_schedules(
    now: datetime | None = None,
    db: AsyncSession | None = None,
    notifications: NotificationService | None = None,
) -> dict[str, int]:
    """
    Generate invoices for every schedule that is due.

    This function should be called by a scheduler (cron or a task queue) at
    least once a day.

    Args:
        now: Run time (defaults to current UTC time)
        db: Optional database session (for testing). If None, creates new session.
        notifications: Mail dispatcher override

    Returns:
        Dict with counts of processed, generated, skipped and failed schedules
    """
    now = now or utcnow()

    # Use provided session or create new one
    should_close_db = db is None
    if db is None:
        db = AsyncSessionLocal()

    try:
        schedule_service = ScheduleService(db)
        schedules = await schedule_service.get_due_schedules(now)
        schedule_ids = [schedule.id for schedule in schedules]

        logger.info("schedule_generation_started", schedules_count=len(schedule_ids), as_of=now.isoformat())

        generated = 0
        skipped = 0
        errors = 0

        for schedule_id in schedule_ids:
            try:
                schedule = await db.get(InvoiceSchedule, schedule_id, populate_existing=True)
                following = calculate_following_generate_date(schedule, now)
                try:
                    invoice = await _generate_for_schedule(db, schedule, now, notifications)
                except ConflictError as e:
                    await schedule_service.advance(schedule_id, following)
                    await db.commit()
                    skipped += 1
                    schedule_generations_total.labels(result="skipped").inc()
                    logger.warning(
                        "schedule_generation_skipped",
                        schedule_id=schedule_id,
                        reason=e.message,
                        next_generate_date=following.isoformat(),
                    )
                    continue

                await schedule_service.mark_as_generated(schedule_id, now, following)
                await db.commit()

                generated += 1
                schedule_generations_total.labels(result="generated").inc()
                logger.info(
                    "schedule_invoice_generated",
                    schedule_id=schedule_id,
                    invoice_id=invoice.id,
                    invoice_number=invoice.invoice_number,
                    next_generate_date=following.isoformat(),
                )

            except Exception as e:
                await db.rollback()
                errors += 1
                schedule_generations_total.labels(result="failed").inc()
                logger.exception(
                    "schedule_generation_failed",
                    schedule_id=schedule_id,
                    exc_info=e,
                )
                continue

        logger.info(
            "schedule_generation_completed",
            schedules_processed=len(schedule_ids),
            invoices_generated=generated,
            skipped=skipped,
            errors=errors,
        )

        return {
            "schedules_processed": len(schedule_ids),
            "invoices_generated": generated,
            "skipped": skipped,
            "errors": errors,
        }
    finally:
        # Close session only if it was created by this function
        if should_close_db:
            await db.close()


async def _generate_for_schedule(
    db: AsyncSession,
    schedule: InvoiceSchedule,
    now: datetime,
    notifications: NotificationService | None,
):
    if not schedule.is_b2b:
        return await InvoiceService(db, notifications).generate_invoice(
            schedule.payroll_id, now=now, schedule_id=schedule.id
        )

    service = B2BInvoiceService(db, notifications)
    invoice = await service.create_from_schedule(schedule, now)
    if schedule.auto_send:
        sender = Actor(company_ids=frozenset({schedule.company_id}), subject="scheduler")
        await service.machine.transition(invoice, sender, InvoiceAction.SEND)
    return invoice
