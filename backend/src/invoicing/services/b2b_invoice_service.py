"""B2B invoice service for business logic."""
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from invoicing.auth.policy import Actor, InvoiceAction
from invoicing.config import settings
from invoicing.exceptions import BadRequestError, NotFoundError
from invoicing.integrations.notification_service import NotificationService
from invoicing.metrics import invoices_created_total
from invoicing.models.directory import Company
from invoicing.models.invoice import B2BInvoice, InvoiceStatus, InvoiceType
from invoicing.models.schedule import InvoiceSchedule
from invoicing.schemas.b2b_invoice import (
    B2BDirection,
    B2BInvoiceCreate,
    B2BInvoiceStats,
    B2BInvoiceUpdate,
    DirectionStats,
)
from invoicing.schemas.error import ErrorCode
from invoicing.schemas.schedule import B2BInvoiceTemplate
from invoicing.services.directory import DirectoryService, company_snapshot
from invoicing.services.invoice_item_service import InvoiceItemService, build_items
from invoicing.services.invoice_queries import ensure_member, get_invoice_for_actor, paginate
from invoicing.services.item_engine import InvoiceItemEngine
from invoicing.services.numbering import InvoiceNumberGenerator
from invoicing.services.state_machine import InvoiceStateMachine
from invoicing.utils.clock import utcnow
from invoicing.utils.money import ZERO, to_decimal

logger = structlog.get_logger(__name__)

# Fields copied verbatim from an update request onto the invoice
_UPDATABLE_FIELDS = (
    "due_date",
    "from_details",
    "payment_network",
    "payment_token",
    "payment_wallet_address",
    "email_to",
    "email_cc",
    "email_bcc",
    "email_subject",
    "email_body",
    "memo",
    "footer",
    "terms",
    "extra_metadata",
)
# NOT NULL columns; an explicit null leaves them unchanged
_REQUIRED_FIELDS = frozenset({"due_date", "from_details"})


class B2BInvoiceService:
    """Service layer for B2B invoice operations."""

    def __init__(self, db: AsyncSession, notifications: NotificationService | None = None):
        """Initialize B2B invoice service with database session."""
        self.db = db
        self.numbers = InvoiceNumberGenerator(db)
        self.directory = DirectoryService(db)
        self.machine = InvoiceStateMachine(db, notifications)
        self.items = InvoiceItemService(db)

    async def create_invoice(
        self,
        company_id: int,
        data: B2BInvoiceCreate,
        actor: Actor | None = None,
        schedule_id: int | None = None,
        now: datetime | None = None,
    ) -> B2BInvoice:
        """
        Create a draft B2B invoice.

        The recipient comes from the address book when ``client_id`` is set,
        otherwise from ``unregistered_company``. Sender and recipient details
        are snapshotted onto the invoice.

        Args:
            company_id: Sender company
            data: Invoice data
            actor: Caller identity; None for scheduled generation
            schedule_id: Originating schedule, when generated by the scheduler
            now: Creation time (defaults to current UTC time)

        Returns:
            Draft invoice with computed totals

        Raises:
            ForbiddenError: If the actor does not belong to the sender company
            NotFoundError: If the company or client does not exist
            BadRequestError: If neither recipient source is provided
        """
        if actor is not None:
            ensure_member(actor, company_id)
        company = await self.directory.get_company(company_id)

        if data.client_id:
            client = await self.directory.get_client(data.client_id, company_id)
            recipient = {
                "client_id": client.id,
                "to_company_id": client.linked_company_id,
                "to_company_name": client.name,
                "to_company_email": client.email,
                "to_company_address": client.address,
                "to_company_tax_id": client.tax_id,
                "to_company_contact_name": client.contact_name,
            }
            cc_emails = client.cc_emails
            recipient_metadata = None
        elif data.unregistered_company:
            unregistered = data.unregistered_company
            recipient = {
                "client_id": None,
                "to_company_id": None,
                "to_company_name": unregistered.company_name,
                "to_company_email": unregistered.email,
                "to_company_address": unregistered.address,
                "to_company_tax_id": unregistered.tax_id,
                "to_company_contact_name": unregistered.contact_name,
            }
            cc_emails = unregistered.cc_emails
            recipient_metadata = unregistered.extra_metadata
        else:
            raise BadRequestError(
                "Either client_id or unregistered_company details must be provided",
                code=ErrorCode.MISSING_RECIPIENT,
            )

        number = await self.numbers.b2b_sequence(
            company_id, recipient["to_company_id"], recipient["to_company_name"]
        )

        now = now or utcnow()
        issue_date = data.issue_date or now
        invoice = B2BInvoice(
            invoice_number=number.number,
            number_scope=number.scope,
            status=InvoiceStatus.DRAFT,
            from_company_id=company_id,
            issue_date=issue_date,
            due_date=data.due_date or issue_date + timedelta(days=settings.b2b_default_due_days),
            currency=data.currency.upper(),
            tax_rate=to_decimal(data.tax_rate, "tax_rate"),
            discount=to_decimal(data.discount, "discount"),
            from_details=data.from_details or company_snapshot(company),
            to_details={
                "name": recipient["to_company_name"],
                "email": recipient["to_company_email"],
                "address": recipient["to_company_address"],
                "tax_id": recipient["to_company_tax_id"],
                "contact_name": recipient["to_company_contact_name"],
                "metadata": recipient_metadata,
            },
            email_to=data.email_to or recipient["to_company_email"],
            email_cc=data.email_cc or cc_emails,
            email_bcc=data.email_bcc,
            email_subject=data.email_subject,
            email_body=data.email_body,
            payment_network=data.payment_network,
            payment_token=data.payment_token,
            payment_wallet_address=data.payment_wallet_address,
            memo=data.memo,
            footer=data.footer,
            terms=data.terms,
            extra_metadata=data.extra_metadata,
            is_auto_generated=schedule_id is not None,
            schedule_id=schedule_id,
            items=build_items(data.items),
            bill=None,
            **recipient,
        )
        InvoiceItemEngine.apply_totals(invoice)
        self.db.add(invoice)
        await self.db.flush()

        invoices_created_total.labels(
            invoice_type=InvoiceType.B2B.value, source="schedule" if schedule_id else "manual"
        ).inc()
        logger.info(
            "b2b_invoice_created",
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            from_company_id=company_id,
            to_company_id=invoice.to_company_id,
            total=str(invoice.total),
        )
        return invoice

    async def create_from_schedule(self, schedule: InvoiceSchedule, now: datetime | None = None) -> B2BInvoice:
        """
        Stamp a draft invoice from a B2B schedule's template.

        Due date is ``now`` plus the template's ``due_days_after_generation``.
        """
        now = now or utcnow()
        template = B2BInvoiceTemplate.model_validate(schedule.invoice_template or {})
        fields = template.model_dump(exclude={"due_days_after_generation", "items"})
        client = schedule.client
        data = B2BInvoiceCreate(
            **fields,
            items=template.items,
            client_id=client.uuid,
            issue_date=now,
            due_date=now + timedelta(days=template.due_days_after_generation),
        )
        return await self.create_invoice(schedule.company_id, data, schedule_id=schedule.id, now=now)

    async def update_invoice(self, invoice_uuid: UUID, actor: Actor, data: B2BInvoiceUpdate) -> B2BInvoice:
        """
        Update a draft B2B invoice; replaces items when provided.

        Raises:
            NotFoundError: If the invoice is not visible to the actor
            ForbiddenError: If the actor is not the sender
            InvalidStateError: If the invoice is not a draft
        """
        invoice = await self.get_invoice(invoice_uuid, actor)
        self.machine.guard(invoice, actor, InvoiceAction.UPDATE)
        self.machine.require_status(invoice, {InvoiceStatus.DRAFT}, "Only draft invoices can be updated")

        changes = data.model_dump(exclude_unset=True)
        for field in _UPDATABLE_FIELDS:
            if field not in changes:
                continue
            if changes[field] is None and field in _REQUIRED_FIELDS:
                continue
            setattr(invoice, field, changes[field])
        if changes.get("tax_rate") is not None:
            invoice.tax_rate = to_decimal(changes["tax_rate"], "tax_rate")
        if changes.get("discount") is not None:
            invoice.discount = to_decimal(changes["discount"], "discount")

        if data.items is not None:
            await self.items.replace_on(invoice, data.items)
        else:
            InvoiceItemEngine.apply_totals(invoice)
            await self.db.flush()

        logger.info("b2b_invoice_updated", invoice_id=invoice.id, fields=sorted(changes))
        return invoice

    async def get_invoice(self, invoice_uuid: UUID, actor: Actor) -> B2BInvoice:
        """Get a B2B invoice visible to the actor (sender or registered recipient)."""
        return await get_invoice_for_actor(self.db, invoice_uuid, actor, B2BInvoice)

    async def get_public_invoice(self, invoice_uuid: UUID) -> B2BInvoice:
        """
        Get a B2B invoice through its public link.

        Drafts are not public.

        Raises:
            NotFoundError: If the invoice does not exist or is still a draft
        """
        result = await self.db.execute(select(B2BInvoice).where(B2BInvoice.uuid == invoice_uuid))
        invoice = result.scalar_one_or_none()
        if not invoice or invoice.status == InvoiceStatus.DRAFT:
            raise NotFoundError("Invoice not found", code=ErrorCode.INVOICE_NOT_FOUND)
        return invoice

    async def list_invoices(
        self,
        company_id: int,
        actor: Actor,
        direction: B2BDirection = B2BDirection.BOTH,
        status: InvoiceStatus | None = None,
        currency: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[B2BInvoice], int]:
        """
        List B2B invoices sent and/or received by a company.

        ``search`` matches invoice number, recipient name or sender company
        name, case-insensitively.

        Returns:
            Tuple of (invoices on the page, total matching invoices)
        """
        ensure_member(actor, company_id)

        if direction == B2BDirection.SENT:
            scope = B2BInvoice.from_company_id == company_id
        elif direction == B2BDirection.RECEIVED:
            scope = B2BInvoice.to_company_id == company_id
        else:
            scope = or_(B2BInvoice.from_company_id == company_id, B2BInvoice.to_company_id == company_id)
        query = select(B2BInvoice).where(scope)

        if status:
            query = query.where(B2BInvoice.status == status)
        if currency:
            query = query.where(B2BInvoice.currency == currency.upper())
        if search:
            pattern = f"%{search}%"
            sender = aliased(Company)
            query = query.outerjoin(sender, sender.id == B2BInvoice.from_company_id).where(
                or_(
                    B2BInvoice.invoice_number.ilike(pattern),
                    B2BInvoice.to_company_name.ilike(pattern),
                    sender.name.ilike(pattern),
                )
            )

        query = query.order_by(B2BInvoice.created_at.desc(), B2BInvoice.id.desc())
        return await paginate(self.db, query, page, limit)

    async def _transition(
        self,
        invoice_uuid: UUID,
        actor: Actor,
        action: InvoiceAction,
        transaction_hash: str | None = None,
    ) -> B2BInvoice | None:
        invoice = await get_invoice_for_actor(self.db, invoice_uuid, actor, B2BInvoice, action)
        return await self.machine.transition(invoice, actor, action, transaction_hash=transaction_hash)

    async def send_invoice(self, invoice_uuid: UUID, actor: Actor) -> B2BInvoice:
        """Send a draft invoice to its recipient."""
        return await self._transition(invoice_uuid, actor, InvoiceAction.SEND)

    async def confirm_invoice(self, invoice_uuid: UUID, actor: Actor) -> B2BInvoice:
        """Recipient confirms a sent invoice (public action); a bill is created."""
        return await self._transition(invoice_uuid, actor, InvoiceAction.CONFIRM)

    async def mark_paid(self, invoice_uuid: UUID, actor: Actor, transaction_hash: str | None = None) -> B2BInvoice:
        """Sender marks a confirmed invoice as paid; the bill follows."""
        return await self._transition(invoice_uuid, actor, InvoiceAction.MARK_PAID, transaction_hash)

    async def cancel_invoice(self, invoice_uuid: UUID, actor: Actor) -> B2BInvoice:
        """Sender cancels an unpaid invoice; its bill is removed."""
        return await self._transition(invoice_uuid, actor, InvoiceAction.CANCEL)

    async def delete_invoice(self, invoice_uuid: UUID, actor: Actor) -> None:
        """Sender deletes a draft invoice."""
        await self._transition(invoice_uuid, actor, InvoiceAction.DELETE)

    async def get_stats(self, company_id: int, actor: Actor) -> B2BInvoiceStats:
        """Aggregate the sent and received B2B invoices of a company."""
        ensure_member(actor, company_id)
        return B2BInvoiceStats(
            sent=await self._direction_stats(B2BInvoice.from_company_id == company_id),
            received=await self._direction_stats(B2BInvoice.to_company_id == company_id),
        )

    async def _direction_stats(self, scope) -> DirectionStats:
        result = await self.db.execute(select(B2BInvoice.status, B2BInvoice.currency, B2BInvoice.total).where(scope))

        by_status = {status.value: 0 for status in InvoiceStatus}
        by_currency: dict[str, Decimal] = defaultdict(lambda: ZERO)
        total_amount = ZERO
        count = 0
        for status, currency, total in result.all():
            count += 1
            by_status[status.value] += 1
            if status != InvoiceStatus.CANCELLED:
                total_amount += total
                by_currency[currency] += total

        return DirectionStats(
            total=count,
            by_status=by_status,
            total_amount=total_amount,
            total_amount_by_currency=dict(by_currency),
        )
