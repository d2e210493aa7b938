"""Payroll invoice service for business logic."""
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

import structlog
from dateutil.relativedelta import relativedelta
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.auth.policy import Actor, InvoiceAction
from invoicing.config import settings
from invoicing.exceptions import ConflictError, NotFoundError
from invoicing.integrations.notification_service import NotificationService
from invoicing.metrics import invoices_created_total
from invoicing.models.directory import Employee, Payroll
from invoicing.models.invoice import InvoiceItem, InvoiceStatus, InvoiceType, PayrollInvoice
from invoicing.schemas.error import ErrorCode
from invoicing.schemas.invoice import PayrollInvoiceCreate, PayrollInvoiceStats, PayrollInvoiceUpdate
from invoicing.services.directory import DirectoryService, company_snapshot
from invoicing.services.invoice_item_service import build_items
from invoicing.services.invoice_queries import ensure_member, get_invoice_for_actor, paginate
from invoicing.services.item_engine import InvoiceItemEngine
from invoicing.services.numbering import InvoiceNumber, InvoiceNumberGenerator
from invoicing.services.state_machine import InvoiceStateMachine
from invoicing.utils.clock import utcnow
from invoicing.utils.money import ZERO, to_decimal

logger = structlog.get_logger(__name__)

UPDATABLE_STATUSES = frozenset({InvoiceStatus.SENT, InvoiceStatus.REVIEWED})
OPEN_STATUSES = frozenset({InvoiceStatus.SENT, InvoiceStatus.REVIEWED, InvoiceStatus.CONFIRMED, InvoiceStatus.OVERDUE})


def employee_snapshot(employee: Employee) -> dict:
    """Party details of an employee, frozen onto a payroll invoice."""
    return {
        "name": employee.full_name,
        "email": employee.email,
        "address": employee.address,
        "city": employee.city,
        "country": employee.country,
        "postal_code": employee.postal_code,
    }


class InvoiceService:
    """Service layer for payroll invoice operations."""

    def __init__(self, db: AsyncSession, notifications: NotificationService | None = None):
        """Initialize invoice service with database session."""
        self.db = db
        self.numbers = InvoiceNumberGenerator(db)
        self.directory = DirectoryService(db)
        self.machine = InvoiceStateMachine(db, notifications)

    async def _next_number(self, payroll: Payroll, now: datetime) -> InvoiceNumber:
        if settings.payroll_invoice_numbering == "monthly":
            return await self.numbers.monthly_sequence(payroll.company_id, now)
        return await self.numbers.payroll_sequence(payroll.id, payroll.employee_id)

    def _new_invoice(self, payroll: Payroll, number: InvoiceNumber, **fields) -> PayrollInvoice:
        employee = payroll.employee
        return PayrollInvoice(
            invoice_number=number.number,
            number_scope=number.scope,
            payroll_id=payroll.id,
            employee_id=employee.id,
            company_id=payroll.company_id,
            employee_email=employee.email,
            from_details=employee_snapshot(employee),
            to_details=company_snapshot(payroll.company),
            email_to=employee.email,
            payment_network=payroll.network,
            payment_token=payroll.token,
            payment_wallet_address=employee.wallet_address,
            bill=None,
            **fields,
        )

    async def create_invoice(self, actor: Actor, data: PayrollInvoiceCreate) -> PayrollInvoice:
        """
        Create a draft payroll invoice from explicit items.

        Args:
            actor: Caller identity (member of the payroll's company)
            data: Invoice data

        Returns:
            Draft invoice with computed totals

        Raises:
            NotFoundError: If the payroll does not exist or belongs to another company
        """
        payroll = await self.directory.get_payroll(data.payroll_id)
        if not actor.is_member(payroll.company_id):
            raise NotFoundError("Payroll not found", code=ErrorCode.PAYROLL_NOT_FOUND)

        now = utcnow()
        issue_date = data.issue_date or now
        number = await self._next_number(payroll, now)

        invoice = self._new_invoice(
            payroll,
            number,
            status=InvoiceStatus.DRAFT,
            issue_date=issue_date,
            due_date=data.due_date or issue_date + timedelta(days=settings.payroll_invoice_due_days),
            currency=data.currency or payroll.currency or settings.default_currency,
            tax_rate=to_decimal(data.tax_rate, "tax_rate"),
            discount=to_decimal(data.discount, "discount"),
            memo=data.memo,
            footer=data.footer,
            terms=data.terms,
            extra_metadata=data.extra_metadata,
            is_auto_generated=False,
            items=build_items(data.items),
        )
        InvoiceItemEngine.apply_totals(invoice)
        self.db.add(invoice)
        await self.db.flush()

        invoices_created_total.labels(invoice_type=InvoiceType.EMPLOYEE.value, source="manual").inc()
        logger.info(
            "payroll_invoice_created",
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            payroll_id=payroll.id,
            total=str(invoice.total),
        )
        return invoice

    async def generate_invoice(
        self,
        payroll_id: int,
        actor: Actor | None = None,
        now: datetime | None = None,
        schedule_id: int | None = None,
    ) -> PayrollInvoice:
        """
        Generate the invoice of the current pay period for a payroll.

        The invoice is issued as SENT with a single item covering the pay
        cycle ending on the payroll's pay date, due 30 days after issue.

        Args:
            payroll_id: Payroll ID
            actor: Caller identity; None for scheduled generation
            now: Issue time (defaults to current UTC time)
            schedule_id: Originating schedule, when generated by the scheduler

        Returns:
            Generated invoice

        Raises:
            NotFoundError: If the payroll does not exist or is outside the actor's companies
            ConflictError: If the payroll already has an invoice issued this calendar month
        """
        payroll = await self.directory.get_payroll(payroll_id)
        if actor is not None and not actor.is_member(payroll.company_id):
            raise NotFoundError("Payroll not found", code=ErrorCode.PAYROLL_NOT_FOUND)

        now = now or utcnow()
        latest = await self.db.execute(
            select(PayrollInvoice.issue_date)
            .where(PayrollInvoice.payroll_id == payroll.id)
            .order_by(PayrollInvoice.issue_date.desc())
            .limit(1)
        )
        latest_issue_date = latest.scalar_one_or_none()
        if latest_issue_date and (latest_issue_date.year, latest_issue_date.month) == (now.year, now.month):
            raise ConflictError(
                "An invoice for this payroll already exists this month",
                code=ErrorCode.INVOICE_ALREADY_GENERATED,
            )

        pay_date = payroll.pay_date or now
        period_start = pay_date - relativedelta(months=payroll.payroll_cycle or 1)
        description = (
            f"{payroll.description} - (from {period_start:%d/%m/%Y} to {pay_date:%d/%m/%Y})"
        )

        number = await self._next_number(payroll, now)
        invoice = self._new_invoice(
            payroll,
            number,
            status=InvoiceStatus.SENT,
            issue_date=now,
            due_date=now + timedelta(days=settings.payroll_invoice_due_days),
            sent_at=now,
            currency=payroll.currency or settings.default_currency,
            tax_rate=ZERO,
            discount=ZERO,
            is_auto_generated=True,
            schedule_id=schedule_id,
            items=[
                InvoiceItem(
                    description=description,
                    quantity=Decimal("1"),
                    unit_price=payroll.amount,
                    unit="month",
                    order=0,
                )
            ],
        )
        InvoiceItemEngine.apply_totals(invoice)
        self.db.add(invoice)
        await self.db.flush()

        source = "schedule" if schedule_id else "payroll"
        invoices_created_total.labels(invoice_type=InvoiceType.EMPLOYEE.value, source=source).inc()
        logger.info(
            "payroll_invoice_generated",
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            payroll_id=payroll.id,
            schedule_id=schedule_id,
            total=str(invoice.total),
        )

        await self.machine.notify("invoice_sent", invoice, self.machine.notifications.send_invoice_notification)
        return invoice

    async def get_invoice(self, invoice_uuid: UUID, actor: Actor) -> PayrollInvoice:
        """Get a payroll invoice visible to the actor."""
        return await get_invoice_for_actor(self.db, invoice_uuid, actor, PayrollInvoice)

    async def get_invoice_by_id(self, invoice_id: int) -> PayrollInvoice:
        """
        Get a payroll invoice by internal ID (no scope check, for workers).

        Raises:
            NotFoundError: If the invoice does not exist
        """
        invoice = await self.db.get(PayrollInvoice, invoice_id)
        if not invoice:
            raise NotFoundError("Invoice not found", code=ErrorCode.INVOICE_NOT_FOUND)
        return invoice

    async def get_invoice_by_number(self, company_id: int, invoice_number: str, actor: Actor) -> PayrollInvoice:
        """
        Get a payroll invoice of a company by its number.

        Raises:
            NotFoundError: If no visible invoice carries this number
        """
        ensure_member(actor, company_id)
        result = await self.db.execute(
            select(PayrollInvoice)
            .where(PayrollInvoice.company_id == company_id, PayrollInvoice.invoice_number == invoice_number)
            .order_by(PayrollInvoice.created_at.desc())
            .limit(1)
        )
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFoundError("Invoice not found", code=ErrorCode.INVOICE_NOT_FOUND)
        return invoice

    async def list_invoices(
        self,
        company_id: int,
        actor: Actor,
        status: InvoiceStatus | None = None,
        payroll_id: int | None = None,
        currency: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[PayrollInvoice], int]:
        """
        List a company's payroll invoices with filters and pagination.

        ``search`` matches invoice number, employee email or employee name,
        case-insensitively.

        Returns:
            Tuple of (invoices on the page, total matching invoices)
        """
        ensure_member(actor, company_id)
        query = select(PayrollInvoice).where(PayrollInvoice.company_id == company_id)

        if status:
            query = query.where(PayrollInvoice.status == status)
        if payroll_id:
            query = query.where(PayrollInvoice.payroll_id == payroll_id)
        if currency:
            query = query.where(PayrollInvoice.currency == currency.upper())
        if search:
            pattern = f"%{search}%"
            query = query.outerjoin(Employee, Employee.id == PayrollInvoice.employee_id).where(
                or_(
                    PayrollInvoice.invoice_number.ilike(pattern),
                    PayrollInvoice.employee_email.ilike(pattern),
                    Employee.first_name.ilike(pattern),
                    Employee.last_name.ilike(pattern),
                )
            )

        query = query.order_by(PayrollInvoice.created_at.desc(), PayrollInvoice.id.desc())
        return await paginate(self.db, query, page, limit)

    async def list_employee_invoices(
        self,
        actor: Actor,
        status: InvoiceStatus | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[PayrollInvoice], int]:
        """List the payroll invoices addressed to the actor's email."""
        if not actor.email:
            return [], 0
        query = select(PayrollInvoice).where(PayrollInvoice.employee_email == actor.email)
        if status:
            query = query.where(PayrollInvoice.status == status)
        query = query.order_by(PayrollInvoice.created_at.desc(), PayrollInvoice.id.desc())
        return await paginate(self.db, query, page, limit)

    async def update_invoice(self, invoice_uuid: UUID, actor: Actor, data: PayrollInvoiceUpdate) -> PayrollInvoice:
        """
        Let the employee correct address and payment details.

        Allowed while the invoice is SENT or REVIEWED. A new address is
        also written to the employee record.

        Raises:
            NotFoundError: If the invoice is not visible to the actor
            ForbiddenError: If the actor is not the invoice's employee
            InvalidStateError: If the invoice is not SENT or REVIEWED
        """
        invoice = await self.get_invoice(invoice_uuid, actor)
        self.machine.guard(invoice, actor, InvoiceAction.UPDATE)
        self.machine.require_status(
            invoice, UPDATABLE_STATUSES, "Invoice can only be updated when in SENT or REVIEWED status"
        )

        changes = data.model_dump(exclude_unset=True)
        address_fields = {key: changes[key] for key in ("address", "city", "country", "postal_code") if key in changes}
        if address_fields:
            invoice.from_details = {**(invoice.from_details or {}), **address_fields}
        if "wallet_address" in changes:
            invoice.payment_wallet_address = changes["wallet_address"]
        if "network" in changes:
            invoice.payment_network = changes["network"]
        if "token" in changes:
            invoice.payment_token = changes["token"]

        if address_fields and invoice.employee_id:
            employee = await self.db.get(Employee, invoice.employee_id)
            if employee:
                for key, value in address_fields.items():
                    setattr(employee, key, value)

        await self.db.flush()
        logger.info("payroll_invoice_updated", invoice_id=invoice.id, fields=sorted(changes))
        return invoice

    async def _transition(self, invoice_uuid: UUID, actor: Actor, action: InvoiceAction) -> PayrollInvoice | None:
        invoice = await get_invoice_for_actor(self.db, invoice_uuid, actor, PayrollInvoice, action)
        return await self.machine.transition(invoice, actor, action)

    async def send_invoice(self, invoice_uuid: UUID, actor: Actor) -> PayrollInvoice:
        """Send a draft invoice to the employee."""
        return await self._transition(invoice_uuid, actor, InvoiceAction.SEND)

    async def review_invoice(self, invoice_uuid: UUID, actor: Actor) -> PayrollInvoice:
        """Employee acknowledges a sent invoice."""
        return await self._transition(invoice_uuid, actor, InvoiceAction.REVIEW)

    async def confirm_invoice(self, invoice_uuid: UUID, actor: Actor) -> PayrollInvoice:
        """Employee confirms a reviewed invoice; the employer gets a bill."""
        return await self._transition(invoice_uuid, actor, InvoiceAction.CONFIRM)

    async def cancel_invoice(self, invoice_uuid: UUID, actor: Actor) -> PayrollInvoice:
        """Employer cancels an invoice that is not paid yet."""
        return await self._transition(invoice_uuid, actor, InvoiceAction.CANCEL)

    async def delete_invoice(self, invoice_uuid: UUID, actor: Actor) -> None:
        """Employer deletes a draft invoice."""
        await self._transition(invoice_uuid, actor, InvoiceAction.DELETE)

    async def get_stats(self, company_id: int, actor: Actor, now: datetime | None = None) -> PayrollInvoiceStats:
        """
        Aggregate a company's payroll invoices.

        ``total_amount`` excludes cancelled invoices; ``due_this_month``
        counts open invoices due in the current calendar month.
        """
        ensure_member(actor, company_id)
        now = now or utcnow()
        month_start = datetime(now.year, now.month, 1)
        month_end = month_start + relativedelta(months=1)

        result = await self.db.execute(
            select(PayrollInvoice.status, PayrollInvoice.total, PayrollInvoice.due_date).where(
                PayrollInvoice.company_id == company_id
            )
        )

        by_status = {status.value: 0 for status in InvoiceStatus}
        total_amount = ZERO
        due_this_month = 0
        count = 0
        for status, total, due_date in result.all():
            count += 1
            by_status[status.value] += 1
            if status != InvoiceStatus.CANCELLED:
                total_amount += total
            if status in OPEN_STATUSES and month_start <= due_date < month_end:
                due_this_month += 1

        return PayrollInvoiceStats(
            total=count,
            by_status=by_status,
            total_amount=total_amount,
            due_this_month=due_this_month,
        )
