"""Integration tests for bills and bill payment."""
from datetime import datetime
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.auth.policy import Actor
from invoicing.exceptions import BadRequestError, ConflictError, NotFoundError
from invoicing.models.bill import BillStatus
from invoicing.models.directory import Payroll
from invoicing.models.invoice import InvoiceStatus


async def _confirmed_invoice(db_session: AsyncSession, payroll: Payroll, company: Actor, employee: Actor, now: datetime):
    from invoicing.services.invoice_service import InvoiceService

    service = InvoiceService(db_session)
    invoice = await service.generate_invoice(payroll.id, actor=company, now=now)
    await service.review_invoice(invoice.uuid, employee)
    invoice = await service.confirm_invoice(invoice.uuid, employee)
    await db_session.commit()
    return invoice


@pytest.mark.asyncio
async def test_pay_bills_settles_invoices(
    db_session: AsyncSession,
    test_payroll: Payroll,
    company_actor: Actor,
    employee_actor: Actor,
) -> None:
    """Test paying bills marks them PAID and moves their invoices to PAID."""
    from invoicing.services.bill_service import BillService

    january = await _confirmed_invoice(db_session, test_payroll, company_actor, employee_actor, datetime(2024, 1, 5))
    february = await _confirmed_invoice(db_session, test_payroll, company_actor, employee_actor, datetime(2024, 2, 5))

    service = BillService(db_session)
    pending = await service.list_bills(test_payroll.company_id, status=BillStatus.PENDING)
    assert len(pending) == 2

    paid = await service.pay_bills(
        company_actor,
        test_payroll.company_id,
        [january.bill.uuid, february.bill.uuid],
        transaction_hash="0xbeef",
    )
    await db_session.commit()

    assert {bill.status for bill in paid} == {BillStatus.PAID}
    assert all(bill.transaction_hash == "0xbeef" for bill in paid)
    assert january.status == InvoiceStatus.PAID
    assert february.status == InvoiceStatus.PAID
    assert january.paid_at is not None

    with pytest.raises(BadRequestError):
        await service.pay_bills(company_actor, test_payroll.company_id, [january.bill.uuid])


@pytest.mark.asyncio
async def test_pay_overdue_invoice_bill(
    db_session: AsyncSession,
    test_payroll: Payroll,
    company_actor: Actor,
    employee_actor: Actor,
) -> None:
    """Test an overdue invoice can still be settled through its bill."""
    from invoicing.services.bill_service import BillService
    from invoicing.workers.overdue import process_overdue_invoices

    invoice = await _confirmed_invoice(db_session, test_payroll, company_actor, employee_actor, datetime(2024, 1, 5))
    await process_overdue_invoices(now=datetime(2024, 3, 1), db=db_session)
    await db_session.refresh(invoice)
    assert invoice.status == InvoiceStatus.OVERDUE

    await BillService(db_session).pay_bills(company_actor, test_payroll.company_id, [invoice.bill.uuid])
    await db_session.commit()

    assert invoice.status == InvoiceStatus.PAID


@pytest.mark.asyncio
async def test_pay_unknown_or_foreign_bills(
    db_session: AsyncSession,
    test_payroll: Payroll,
    company_actor: Actor,
    employee_actor: Actor,
) -> None:
    """Test bills outside the paying company are reported as missing."""
    from invoicing.services.bill_service import BillService

    invoice = await _confirmed_invoice(db_session, test_payroll, company_actor, employee_actor, datetime(2024, 1, 5))
    service = BillService(db_session)

    with pytest.raises(NotFoundError):
        await service.pay_bills(company_actor, test_payroll.company_id, [invoice.bill.uuid, uuid4()])

    outsider = Actor(email="intruder@example.com", company_ids=frozenset({test_payroll.company_id + 100}))
    with pytest.raises(NotFoundError):
        await service.pay_bills(outsider, test_payroll.company_id, [invoice.bill.uuid])

    bill = await service.get_bill(invoice.bill.uuid, test_payroll.company_id)
    assert bill.status == BillStatus.PENDING


@pytest.mark.asyncio
async def test_bill_rules(
    db_session: AsyncSession,
    test_payroll: Payroll,
    company_actor: Actor,
    employee_actor: Actor,
) -> None:
    """Test one bill per confirmed invoice, and paid bills are permanent."""
    from invoicing.services.bill_service import BillService
    from invoicing.services.invoice_service import InvoiceService

    service = BillService(db_session)
    invoice = await _confirmed_invoice(db_session, test_payroll, company_actor, employee_actor, datetime(2024, 1, 5))

    with pytest.raises(ConflictError):
        await service.create_from_invoice(invoice.uuid, test_payroll.company_id)

    sent = await InvoiceService(db_session).generate_invoice(
        test_payroll.id, actor=company_actor, now=datetime(2024, 2, 5)
    )
    await db_session.commit()
    with pytest.raises(BadRequestError):
        await service.create_from_invoice(sent.uuid, test_payroll.company_id)

    bill = await service.update_status(invoice.bill.id, test_payroll.company_id, BillStatus.PAID, "0x01")
    await db_session.commit()
    assert bill.paid_at is not None

    with pytest.raises(BadRequestError):
        await service.delete(bill.uuid, test_payroll.company_id)
    with pytest.raises(NotFoundError):
        await service.get_bill(bill.uuid, test_payroll.company_id + 100)
