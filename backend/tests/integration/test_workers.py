"""Integration tests for the schedule generation and overdue workers."""
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.auth.policy import Actor
from invoicing.integrations.notification_service import NotificationService
from invoicing.models.directory import Client, Company, Payroll
from invoicing.models.invoice import B2BInvoice, Invoice, InvoiceStatus, PayrollInvoice
from invoicing.models.schedule import InvoiceSchedule
from invoicing.schemas.item import InvoiceItemCreate
from invoicing.schemas.schedule import B2BInvoiceTemplate, B2BScheduleCreate, PayrollScheduleCreate

JAN_15 = datetime(2024, 1, 15)


class FailingNotificationService(NotificationService):
    """Mail provider that is always down."""

    async def send_email(self, *args, **kwargs) -> dict:
        raise RuntimeError("mail provider unavailable")


async def _payroll_schedule(db_session: AsyncSession, payroll: Payroll, actor: Actor) -> InvoiceSchedule:
    from invoicing.services.schedule_service import ScheduleService

    schedule = await ScheduleService(db_session).create_payroll_schedule(
        actor, payroll.id, PayrollScheduleCreate(day_of_month=1, generate_days_before=7), now=JAN_15
    )
    await db_session.commit()
    return schedule


@pytest.mark.asyncio
async def test_due_payroll_schedule_generates_invoice(
    db_session: AsyncSession,
    test_payroll: Payroll,
    company_actor: Actor,
) -> None:
    """Test a due payroll schedule issues a SENT invoice and moves forward."""
    from invoicing.workers.invoice_generation import process_due_schedules

    schedule = await _payroll_schedule(db_session, test_payroll, company_actor)
    run_at = datetime(2024, 1, 25, 6, 0)

    result = await process_due_schedules(now=run_at, db=db_session)

    assert result == {"schedules_processed": 1, "invoices_generated": 1, "skipped": 0, "errors": 0}

    await db_session.refresh(schedule)
    assert schedule.last_generated_at == run_at
    assert schedule.next_generate_date == datetime(2024, 2, 23)

    invoices = (
        await db_session.execute(select(PayrollInvoice).where(PayrollInvoice.schedule_id == schedule.id))
    ).scalars().all()
    assert len(invoices) == 1
    assert invoices[0].status == InvoiceStatus.SENT
    assert invoices[0].is_auto_generated is True

    # Nothing is due again until the next occurrence
    rerun = await process_due_schedules(now=run_at, db=db_session)
    assert rerun["schedules_processed"] == 0


@pytest.mark.asyncio
async def test_existing_monthly_invoice_skips_schedule(
    db_session: AsyncSession,
    test_payroll: Payroll,
    company_actor: Actor,
) -> None:
    """Test a payroll already invoiced this month is skipped but still advanced."""
    from invoicing.services.invoice_service import InvoiceService
    from invoicing.workers.invoice_generation import process_due_schedules

    await InvoiceService(db_session).generate_invoice(test_payroll.id, actor=company_actor, now=datetime(2024, 1, 10))
    await db_session.commit()
    schedule = await _payroll_schedule(db_session, test_payroll, company_actor)

    result = await process_due_schedules(now=datetime(2024, 1, 25), db=db_session)

    assert result["skipped"] == 1
    assert result["invoices_generated"] == 0
    await db_session.refresh(schedule)
    assert schedule.last_generated_at is None
    assert schedule.next_generate_date == datetime(2024, 2, 23)


@pytest.mark.asyncio
async def test_b2b_schedule_with_auto_send(
    db_session: AsyncSession,
    test_company: Company,
    test_client_record: Client,
    company_actor: Actor,
) -> None:
    """Test a B2B schedule stamps its template and sends the invoice."""
    from invoicing.services.schedule_service import ScheduleService
    from invoicing.workers.invoice_generation import process_due_schedules

    schedule = await ScheduleService(db_session).create_b2b_schedule(
        company_actor,
        test_company.id,
        B2BScheduleCreate(
            client_id=test_client_record.uuid,
            day_of_month=5,
            auto_send=True,
            invoice_template=B2BInvoiceTemplate(
                items=[InvoiceItemCreate(description="Monthly retainer", unit_price=Decimal("1200"))],
                tax_rate=Decimal("10"),
                due_days_after_generation=15,
            ),
        ),
        now=JAN_15,
    )
    await db_session.commit()
    run_at = datetime(2024, 2, 5)

    result = await process_due_schedules(now=run_at, db=db_session)

    assert result["invoices_generated"] == 1
    invoice = (
        await db_session.execute(select(B2BInvoice).where(B2BInvoice.schedule_id == schedule.id))
    ).scalar_one()
    assert invoice.status == InvoiceStatus.SENT
    assert invoice.is_auto_generated is True
    assert invoice.issue_date == run_at
    assert invoice.due_date == datetime(2024, 2, 20)
    assert invoice.total == Decimal("1320.00")
    assert invoice.to_company_id == test_client_record.linked_company_id

    await db_session.refresh(schedule)
    assert schedule.next_generate_date == datetime(2024, 3, 5)


@pytest.mark.asyncio
async def test_failed_schedule_does_not_block_batch(
    db_session: AsyncSession,
    test_company: Company,
    test_client_record: Client,
    test_payroll: Payroll,
    company_actor: Actor,
) -> None:
    """Test a broken schedule is counted as an error while others still generate."""
    from invoicing.workers.invoice_generation import process_due_schedules

    payroll_schedule = await _payroll_schedule(db_session, test_payroll, company_actor)
    broken = InvoiceSchedule(
        company_id=test_company.id,
        client_id=test_client_record.id,
        next_generate_date=datetime(2024, 1, 25, 12, 0),
        invoice_template={"items": []},
    )
    db_session.add(broken)
    await db_session.commit()
    broken_id = broken.id
    payroll_schedule_id = payroll_schedule.id

    result = await process_due_schedules(now=datetime(2024, 1, 26), db=db_session)

    assert result["schedules_processed"] == 2
    assert result["errors"] == 1
    assert result["invoices_generated"] == 1

    broken = await db_session.get(InvoiceSchedule, broken_id, populate_existing=True)
    assert broken.next_generate_date == datetime(2024, 1, 25, 12, 0)
    assert broken.last_generated_at is None
    generated = await db_session.get(InvoiceSchedule, payroll_schedule_id, populate_existing=True)
    assert generated.last_generated_at == datetime(2024, 1, 26)


@pytest.mark.asyncio
async def test_paused_schedule_is_ignored(
    db_session: AsyncSession,
    test_payroll: Payroll,
    company_actor: Actor,
) -> None:
    """Test inactive schedules never generate."""
    from invoicing.services.schedule_service import ScheduleService
    from invoicing.workers.invoice_generation import process_due_schedules

    schedule = await _payroll_schedule(db_session, test_payroll, company_actor)
    await ScheduleService(db_session).toggle_schedule(company_actor, schedule.uuid)
    await db_session.commit()

    result = await process_due_schedules(now=datetime(2024, 6, 1), db=db_session)

    assert result["schedules_processed"] == 0


@pytest.mark.asyncio
async def test_notification_failure_keeps_invoice(
    db_session: AsyncSession,
    test_payroll: Payroll,
    company_actor: Actor,
) -> None:
    """Test mail failures never undo a generated invoice."""
    from invoicing.workers.invoice_generation import process_due_schedules

    await _payroll_schedule(db_session, test_payroll, company_actor)

    result = await process_due_schedules(
        now=datetime(2024, 1, 25), db=db_session, notifications=FailingNotificationService()
    )

    assert result["invoices_generated"] == 1
    assert result["errors"] == 0


@pytest.mark.asyncio
async def test_overdue_sweep(
    db_session: AsyncSession,
    test_payroll: Payroll,
    company_actor: Actor,
) -> None:
    """Test open invoices past due become OVERDUE once; drafts are untouched."""
    from invoicing.schemas.invoice import PayrollInvoiceCreate
    from invoicing.services.invoice_service import InvoiceService
    from invoicing.workers.overdue import process_overdue_invoices

    service = InvoiceService(db_session)
    sent = await service.generate_invoice(test_payroll.id, actor=company_actor, now=datetime(2024, 2, 1))
    draft = await service.create_invoice(
        company_actor,
        PayrollInvoiceCreate(
            payroll_id=test_payroll.id,
            issue_date=datetime(2024, 1, 1),
            due_date=datetime(2024, 1, 31),
            items=[InvoiceItemCreate(description="Draft", unit_price=Decimal("10"))],
        ),
    )
    await db_session.commit()

    before_due = await process_overdue_invoices(now=datetime(2024, 3, 1), db=db_session)
    assert before_due == {"marked_overdue": 0}

    # Due date is inclusive
    result = await process_overdue_invoices(now=sent.due_date, db=db_session)
    assert result == {"marked_overdue": 1}

    again = await process_overdue_invoices(now=datetime(2024, 4, 1), db=db_session)
    assert again == {"marked_overdue": 0}

    statuses = dict(
        (await db_session.execute(select(Invoice.id, Invoice.status).where(Invoice.id.in_([sent.id, draft.id])))).all()
    )
    assert statuses == {sent.id: InvoiceStatus.OVERDUE, draft.id: InvoiceStatus.DRAFT}
