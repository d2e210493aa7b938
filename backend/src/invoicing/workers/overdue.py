"""Overdue sweep worker.

Moves open invoices (SENT, REVIEWED, CONFIRMED) whose due date has passed to
OVERDUE. Safe to run repeatedly: invoices already overdue no longer match.
"""
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.database import AsyncSessionLocal
from invoicing.services.state_machine import InvoiceStateMachine
from invoicing.utils.clock import utcnow

logger = structlog.get_logger(__name__)


async def process_overdue_invoices(now: datetime | None = None, db: AsyncSession | None = None) -> dict[str, int]:
    """
    Mark every open invoice past its due date as overdue.

    Args:
        now: Run time (defaults to current UTC time)
        db: Optional database session (for testing). If None, creates new session.

    Returns:
        Dict with the number of invoices marked overdue
    """
    now = now or utcnow()

    should_close_db = db is None
    if db is None:
        db = AsyncSessionLocal()

    try:
        try:
            marked = await InvoiceStateMachine(db).mark_overdue(now)
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.exception("overdue_sweep_error", exc_info=e)
            raise

        return {"marked_overdue": marked}
    finally:
        if should_close_db:
            await db.close()
