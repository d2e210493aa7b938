"""Bill service: payable records linked to confirmed invoices."""
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.auth.policy import Actor, InvoiceAction
from invoicing.exceptions import BadRequestError, ConflictError, NotFoundError
from invoicing.metrics import bills_paid_total
from invoicing.models.bill import Bill, BillStatus
from invoicing.models.invoice import Invoice, InvoiceStatus
from invoicing.schemas.error import ErrorCode
from invoicing.utils.clock import utcnow

logger = structlog.get_logger(__name__)


class BillService:
    """Service layer for bill operations."""

    def __init__(self, db: AsyncSession):
        """Initialize bill service with database session."""
        self.db = db

    async def create_from_invoice(self, invoice_uuid: UUID, beneficiary_company_id: int) -> Bill:
        """
        Create the bill of a confirmed invoice.

        Args:
            invoice_uuid: Invoice UUID
            beneficiary_company_id: Company that will track the bill

        Returns:
            Created bill

        Raises:
            NotFoundError: If the invoice does not exist
            BadRequestError: If the invoice is not confirmed
            ConflictError: If the invoice already has a bill
        """
        result = await self.db.execute(select(Invoice).where(Invoice.uuid == invoice_uuid))
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFoundError("Invoice not found", code=ErrorCode.INVOICE_NOT_FOUND)
        if invoice.status != InvoiceStatus.CONFIRMED:
            raise BadRequestError("Only confirmed invoices can be billed")
        if invoice.bill is not None:
            raise ConflictError("Bill already exists for this invoice", code=ErrorCode.BILL_ALREADY_EXISTS)

        bill = Bill(
            company_id=beneficiary_company_id,
            invoice=invoice,
            status=BillStatus.PENDING,
            extra_metadata={
                "invoice_number": invoice.invoice_number,
                "amount": str(invoice.total),
                "currency": invoice.currency,
            },
        )
        self.db.add(bill)
        await self.db.flush()

        logger.info(
            "bill_created",
            bill_id=bill.id,
            invoice_id=invoice.id,
            company_id=beneficiary_company_id,
        )
        return bill

    async def get_bill(self, bill_uuid: UUID, company_id: int) -> Bill:
        """
        Get a bill of a company.

        Raises:
            NotFoundError: If the bill does not exist or belongs to another company
        """
        result = await self.db.execute(select(Bill).where(Bill.uuid == bill_uuid, Bill.company_id == company_id))
        bill = result.scalar_one_or_none()
        if not bill:
            raise NotFoundError("Bill not found", code=ErrorCode.BILL_NOT_FOUND)
        return bill

    async def update_status(
        self,
        bill_id: int,
        company_id: int,
        status: BillStatus,
        transaction_hash: str | None = None,
    ) -> Bill:
        """
        Update the status of a bill; PAID stamps ``paid_at``.

        Raises:
            NotFoundError: If the bill does not exist or belongs to another company
        """
        result = await self.db.execute(select(Bill).where(Bill.id == bill_id, Bill.company_id == company_id))
        bill = result.scalar_one_or_none()
        if not bill:
            raise NotFoundError("Bill not found", code=ErrorCode.BILL_NOT_FOUND)

        bill.status = status
        if status == BillStatus.PAID:
            bill.paid_at = utcnow()
            if transaction_hash:
                bill.transaction_hash = transaction_hash
        await self.db.flush()

        logger.info("bill_status_updated", bill_id=bill.id, status=status.value)
        return bill

    async def delete(self, bill_uuid: UUID, company_id: int) -> None:
        """
        Delete an unpaid bill.

        Raises:
            NotFoundError: If the bill does not exist or belongs to another company
            BadRequestError: If the bill is already paid
        """
        bill = await self.get_bill(bill_uuid, company_id)
        if bill.status == BillStatus.PAID:
            raise BadRequestError("Paid bills cannot be deleted", code=ErrorCode.BILL_ALREADY_PAID)

        await self.db.delete(bill)
        await self.db.flush()
        logger.info("bill_deleted", bill_id=bill.id, invoice_id=bill.invoice_id)

    async def list_bills(self, company_id: int, status: BillStatus | None = None) -> list[Bill]:
        """List the bills of a company, newest first."""
        query = select(Bill).where(Bill.company_id == company_id)
        if status:
            query = query.where(Bill.status == status)
        result = await self.db.execute(query.order_by(Bill.created_at.desc()))
        return list(result.scalars().all())

    async def pay_bills(
        self,
        actor: Actor,
        company_id: int,
        bill_uuids: list[UUID],
        transaction_hash: str | None = None,
    ) -> list[Bill]:
        """
        Mark bills as paid and settle their invoices.

        All bills must belong to ``company_id`` and be unpaid; otherwise nothing
        is changed.

        Args:
            actor: Caller identity (must belong to ``company_id``)
            company_id: Paying company
            bill_uuids: Bills to pay
            transaction_hash: Payment reference recorded on every bill

        Returns:
            The paid bills

        Raises:
            NotFoundError: If any bill is missing or outside the company
            BadRequestError: If any bill is already paid
        """
        from invoicing.services.state_machine import InvoiceStateMachine

        if not actor.is_member(company_id):
            raise NotFoundError("Bill not found", code=ErrorCode.BILL_NOT_FOUND)

        unique_uuids = set(bill_uuids)
        result = await self.db.execute(
            select(Bill).where(Bill.uuid.in_(unique_uuids), Bill.company_id == company_id)
        )
        bills = list(result.scalars().all())
        if len(bills) != len(unique_uuids):
            raise NotFoundError("Some bills were not found", code=ErrorCode.BILL_NOT_FOUND)

        already_paid = [str(bill.uuid) for bill in bills if bill.status == BillStatus.PAID]
        if already_paid:
            raise BadRequestError(
                "Some bills are already paid",
                code=ErrorCode.BILL_ALREADY_PAID,
                details={"bills": already_paid},
            )

        machine = InvoiceStateMachine(self.db)
        paid_at = utcnow()
        for bill in bills:
            bill.status = BillStatus.PAID
            bill.paid_at = paid_at
            bill.transaction_hash = transaction_hash
            await machine.transition(bill.invoice, actor, InvoiceAction.SETTLE)

        await self.db.flush()
        bills_paid_total.inc(len(bills))
        logger.info("bills_paid", company_id=company_id, count=len(bills), transaction_hash=transaction_hash)
        return bills
