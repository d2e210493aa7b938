"""Invoice schedule service for recurring invoice generation."""
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.auth.policy import Actor
from invoicing.exceptions import BadRequestError, NotFoundError
from invoicing.models.schedule import InvoiceSchedule
from invoicing.schemas.error import ErrorCode
from invoicing.schemas.schedule import B2BScheduleCreate, PayrollScheduleCreate, ScheduleUpdate
from invoicing.services.directory import DirectoryService
from invoicing.services.invoice_queries import ensure_member
from invoicing.services.schedule_calculator import calculate_next_generate_date
from invoicing.utils.clock import utcnow

logger = structlog.get_logger(__name__)

TIMING_FIELDS = frozenset({"frequency", "day_of_month", "day_of_week", "generate_days_before"})
# NOT NULL columns; an explicit null leaves them unchanged
REQUIRED_SCHEDULE_FIELDS = frozenset({"frequency", "generate_days_before", "auto_send"})


def _next_date(schedule: InvoiceSchedule, now: datetime | None = None) -> datetime:
    return calculate_next_generate_date(
        schedule.frequency,
        schedule.day_of_month,
        schedule.day_of_week,
        schedule.generate_days_before,
        now=now,
    )


class ScheduleService:
    """Service layer for payroll and B2B invoice schedules."""

    def __init__(self, db: AsyncSession):
        """Initialize schedule service with database session."""
        self.db = db
        self.directory = DirectoryService(db)

    async def _find(self, *criteria) -> InvoiceSchedule | None:
        result = await self.db.execute(
            select(InvoiceSchedule)
            .where(*criteria)
            .order_by(InvoiceSchedule.id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _ensure_no_active_schedule(self, payroll_id: int | None, client_id: int | None, company_id: int) -> None:
        """Raise unless the payroll (or the company's client) has no active schedule."""
        if payroll_id is not None:
            existing = await self._find(InvoiceSchedule.payroll_id == payroll_id, InvoiceSchedule.is_active.is_(True))
            message = "Invoice schedule already exists for this payroll"
        else:
            existing = await self._find(
                InvoiceSchedule.client_id == client_id,
                InvoiceSchedule.company_id == company_id,
                InvoiceSchedule.is_active.is_(True),
            )
            message = "Invoice schedule already exists for this client"
        if existing:
            raise BadRequestError(message, code=ErrorCode.SCHEDULE_ALREADY_EXISTS)

    async def create_payroll_schedule(
        self,
        actor: Actor,
        payroll_id: int,
        data: PayrollScheduleCreate,
        now: datetime | None = None,
    ) -> InvoiceSchedule:
        """
        Create the recurring schedule of a payroll.

        Args:
            actor: Caller identity (member of the payroll's company)
            payroll_id: Payroll ID
            data: Recurrence settings
            now: Reference time for the first generation date

        Returns:
            Active schedule with ``next_generate_date`` computed

        Raises:
            NotFoundError: If the payroll is outside the actor's companies
            BadRequestError: If the payroll already has an active schedule
        """
        payroll = await self.directory.get_payroll(payroll_id)
        if not actor.is_member(payroll.company_id):
            raise NotFoundError("Payroll not found", code=ErrorCode.PAYROLL_NOT_FOUND)

        await self._ensure_no_active_schedule(payroll.id, None, payroll.company_id)

        schedule = InvoiceSchedule(
            company_id=payroll.company_id,
            payroll_id=payroll.id,
            frequency=data.frequency,
            day_of_month=data.day_of_month,
            day_of_week=data.day_of_week,
            generate_days_before=data.generate_days_before,
            auto_send=data.auto_send,
            is_active=True,
            extra_metadata=data.extra_metadata,
        )
        schedule.next_generate_date = _next_date(schedule, now)
        self.db.add(schedule)
        await self.db.flush()

        logger.info(
            "invoice_schedule_created",
            schedule_id=schedule.id,
            payroll_id=payroll.id,
            frequency=schedule.frequency.value,
            next_generate_date=schedule.next_generate_date.isoformat(),
        )
        return schedule

    async def get_payroll_schedule(self, actor: Actor, payroll_id: int) -> InvoiceSchedule:
        """
        Get the active schedule of a payroll.

        Raises:
            NotFoundError: If the payroll or its schedule is outside the actor's companies
        """
        payroll = await self.directory.get_payroll(payroll_id)
        if not actor.is_member(payroll.company_id):
            raise NotFoundError("Payroll not found", code=ErrorCode.PAYROLL_NOT_FOUND)
        schedule = await self._find(InvoiceSchedule.payroll_id == payroll.id, InvoiceSchedule.is_active.is_(True))
        if not schedule:
            raise NotFoundError("Invoice schedule not found", code=ErrorCode.SCHEDULE_NOT_FOUND)
        return schedule

    async def create_b2b_schedule(
        self,
        actor: Actor,
        company_id: int,
        data: B2BScheduleCreate,
        now: datetime | None = None,
    ) -> InvoiceSchedule:
        """
        Create a recurring B2B schedule for an address-book client.

        The invoice template is stored as JSON and stamped onto a new draft
        at every generation.

        Raises:
            ForbiddenError: If the actor does not belong to the company
            NotFoundError: If the client does not belong to the company
            BadRequestError: If the client already has an active schedule
        """
        ensure_member(actor, company_id)
        client = await self.directory.get_client(data.client_id, company_id)

        await self._ensure_no_active_schedule(None, client.id, company_id)

        schedule = InvoiceSchedule(
            company_id=company_id,
            client_id=client.id,
            frequency=data.frequency,
            day_of_month=data.day_of_month,
            day_of_week=data.day_of_week,
            generate_days_before=data.generate_days_before,
            auto_send=data.auto_send,
            is_active=True,
            invoice_template=data.invoice_template.model_dump(mode="json"),
            extra_metadata=data.extra_metadata,
        )
        schedule.next_generate_date = _next_date(schedule, now)
        self.db.add(schedule)
        await self.db.flush()

        logger.info(
            "b2b_schedule_created",
            schedule_id=schedule.id,
            company_id=company_id,
            client_id=client.id,
            next_generate_date=schedule.next_generate_date.isoformat(),
        )
        return schedule

    async def list_b2b_schedules(self, actor: Actor, company_id: int) -> list[InvoiceSchedule]:
        """List the B2B schedules of a company, newest first."""
        ensure_member(actor, company_id)
        result = await self.db.execute(
            select(InvoiceSchedule)
            .where(InvoiceSchedule.company_id == company_id, InvoiceSchedule.client_id.is_not(None))
            .order_by(InvoiceSchedule.created_at.desc(), InvoiceSchedule.id.desc())
        )
        return list(result.scalars().all())

    async def get_schedule(self, actor: Actor, schedule_uuid: UUID) -> InvoiceSchedule:
        """
        Get a schedule by UUID.

        Raises:
            NotFoundError: If the schedule does not exist or belongs to another company
        """
        schedule = await self._find(InvoiceSchedule.uuid == schedule_uuid)
        if not schedule or not actor.is_member(schedule.company_id):
            raise NotFoundError("Invoice schedule not found", code=ErrorCode.SCHEDULE_NOT_FOUND)
        return schedule

    async def update_schedule(
        self,
        actor: Actor,
        schedule_uuid: UUID,
        data: ScheduleUpdate,
        now: datetime | None = None,
    ) -> InvoiceSchedule:
        """
        Update a schedule; only provided fields change.

        ``next_generate_date`` is recomputed when any timing field changes.

        Raises:
            NotFoundError: If the schedule is outside the actor's companies
            BadRequestError: If a template is given for a payroll schedule
        """
        schedule = await self.get_schedule(actor, schedule_uuid)
        changes = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field not in REQUIRED_SCHEDULE_FIELDS
        }

        if "invoice_template" in changes:
            if not schedule.is_b2b:
                raise BadRequestError("Payroll schedules do not have an invoice template")
            if data.invoice_template is not None:
                schedule.invoice_template = data.invoice_template.model_dump(mode="json")
            changes.pop("invoice_template")

        for field, value in changes.items():
            setattr(schedule, field, value)

        if TIMING_FIELDS & changes.keys():
            schedule.next_generate_date = _next_date(schedule, now)

        await self.db.flush()
        logger.info(
            "invoice_schedule_updated",
            schedule_id=schedule.id,
            fields=sorted(changes),
            next_generate_date=schedule.next_generate_date.isoformat(),
        )
        return schedule

    async def toggle_schedule(self, actor: Actor, schedule_uuid: UUID, now: datetime | None = None) -> InvoiceSchedule:
        """
        Flip ``is_active``; reactivation recomputes ``next_generate_date``.

        Raises:
            NotFoundError: If the schedule is outside the actor's companies
            BadRequestError: If reactivating while another schedule of the same payroll or client is active
        """
        schedule = await self.get_schedule(actor, schedule_uuid)
        if not schedule.is_active:
            await self._ensure_no_active_schedule(schedule.payroll_id, schedule.client_id, schedule.company_id)
        schedule.is_active = not schedule.is_active
        if schedule.is_active:
            schedule.next_generate_date = _next_date(schedule, now)
        await self.db.flush()

        logger.info("invoice_schedule_toggled", schedule_id=schedule.id, is_active=schedule.is_active)
        return schedule

    async def delete_schedule(self, actor: Actor, schedule_uuid: UUID) -> None:
        """Delete a schedule; invoices it generated are kept."""
        schedule = await self.get_schedule(actor, schedule_uuid)
        await self.db.delete(schedule)
        await self.db.flush()
        logger.info("invoice_schedule_deleted", schedule_id=schedule.id)

    async def get_due_schedules(self, now: datetime | None = None) -> list[InvoiceSchedule]:
        """Active schedules whose ``next_generate_date`` has been reached."""
        now = now or utcnow()
        result = await self.db.execute(
            select(InvoiceSchedule)
            .where(InvoiceSchedule.is_active.is_(True), InvoiceSchedule.next_generate_date <= now)
            .order_by(InvoiceSchedule.next_generate_date, InvoiceSchedule.id)
        )
        return list(result.scalars().all())

    async def mark_as_generated(self, schedule_id: int, generated_at: datetime, next_generate_date: datetime) -> None:
        """Stamp a successful generation and move the schedule forward."""
        await self.db.execute(
            update(InvoiceSchedule)
            .where(InvoiceSchedule.id == schedule_id)
            .values(
                last_generated_at=generated_at,
                next_generate_date=next_generate_date,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session="evaluate")
        )

    async def advance(self, schedule_id: int, next_generate_date: datetime) -> None:
        """Move the schedule forward without recording a generation."""
        await self.db.execute(
            update(InvoiceSchedule)
            .where(InvoiceSchedule.id == schedule_id)
            .values(next_generate_date=next_generate_date, updated_at=utcnow())
            .execution_options(synchronize_session="evaluate")
        )
