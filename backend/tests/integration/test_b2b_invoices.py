"""Integration tests for B2B invoices."""
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.auth.policy import PUBLIC_ACTOR, Actor
from invoicing.exceptions import BadRequestError, ForbiddenError, InvalidStateError, NotFoundError
from invoicing.models.bill import BillStatus
from invoicing.models.directory import Client, Company
from invoicing.models.invoice import InvoiceStatus
from invoicing.schemas.b2b_invoice import B2BDirection, B2BInvoiceCreate, B2BInvoiceUpdate, UnregisteredCompany
from invoicing.schemas.item import InvoiceItemCreate

ITEMS = [
    InvoiceItemCreate(description="Consulting", quantity=Decimal("2"), unit_price=Decimal("100")),
    InvoiceItemCreate(description="Support", quantity=Decimal("1"), unit_price=Decimal("50")),
]


def _client_invoice(client: Client, **overrides) -> B2BInvoiceCreate:
    data = {"client_id": client.uuid, "items": ITEMS, "tax_rate": Decimal("10")}
    data.update(overrides)
    return B2BInvoiceCreate(**data)


@pytest.mark.asyncio
async def test_create_b2b_invoice_for_client(
    db_session: AsyncSession,
    test_company: Company,
    other_company: Company,
    test_client_record: Client,
    company_actor: Actor,
) -> None:
    """Test creating a B2B invoice snapshots the client and computes totals."""
    from invoicing.services.b2b_invoice_service import B2BInvoiceService

    invoice = await B2BInvoiceService(db_session).create_invoice(
        test_company.id, _client_invoice(test_client_record, currency="eur"), actor=company_actor
    )
    await db_session.commit()

    assert invoice.status == InvoiceStatus.DRAFT
    assert invoice.invoice_type == "B2B"
    assert invoice.invoice_number == "INV-B2B-0001"
    assert invoice.currency == "EUR"
    assert invoice.subtotal == Decimal("250.00")
    assert invoice.tax_amount == Decimal("25.00")
    assert invoice.total == Decimal("275.00")
    assert invoice.from_company_id == test_company.id
    assert invoice.to_company_id == other_company.id
    assert invoice.client_id == test_client_record.id
    assert invoice.email_to == test_client_record.email
    assert invoice.email_cc == test_client_record.cc_emails
    assert invoice.from_details["name"] == test_company.name
    assert invoice.to_details["name"] == test_client_record.name


@pytest.mark.asyncio
async def test_create_b2b_invoice_for_unregistered_company(
    db_session: AsyncSession,
    test_company: Company,
    company_actor: Actor,
) -> None:
    """Test an unregistered recipient is stored by name only."""
    from invoicing.services.b2b_invoice_service import B2BInvoiceService

    service = B2BInvoiceService(db_session)
    data = B2BInvoiceCreate(
        unregistered_company=UnregisteredCompany(company_name="Initech", email="ap@initech.test"),
        items=ITEMS,
    )
    first = await service.create_invoice(test_company.id, data, actor=company_actor)
    second = await service.create_invoice(test_company.id, data, actor=company_actor)
    await db_session.commit()

    assert first.to_company_id is None
    assert first.client_id is None
    assert first.to_company_name == "Initech"
    assert first.email_to == "ap@initech.test"
    assert first.total == Decimal("250.00")
    assert [first.invoice_number, second.invoice_number] == ["INV-B2B-0001", "INV-B2B-0002"]


@pytest.mark.asyncio
async def test_create_without_recipient(
    db_session: AsyncSession,
    test_company: Company,
    company_actor: Actor,
) -> None:
    """Test a recipient source is required."""
    from invoicing.services.b2b_invoice_service import B2BInvoiceService

    with pytest.raises(BadRequestError) as exc_info:
        await B2BInvoiceService(db_session).create_invoice(
            test_company.id, B2BInvoiceCreate(items=ITEMS), actor=company_actor
        )

    assert exc_info.value.code == "missing_recipient"


@pytest.mark.asyncio
async def test_create_for_foreign_company(
    db_session: AsyncSession,
    other_company: Company,
    test_client_record: Client,
    company_actor: Actor,
) -> None:
    """Test members cannot invoice on behalf of another company."""
    from invoicing.services.b2b_invoice_service import B2BInvoiceService

    with pytest.raises(ForbiddenError):
        await B2BInvoiceService(db_session).create_invoice(
            other_company.id, _client_invoice(test_client_record), actor=company_actor
        )


@pytest.mark.asyncio
async def test_b2b_lifecycle_with_bill(
    db_session: AsyncSession,
    test_company: Company,
    test_client_record: Client,
    company_actor: Actor,
    recipient_actor: Actor,
) -> None:
    """Test send, public confirm (bill created) and mark paid (bill paid)."""
    from invoicing.services.b2b_invoice_service import B2BInvoiceService

    service = B2BInvoiceService(db_session)
    invoice = await service.create_invoice(test_company.id, _client_invoice(test_client_record), actor=company_actor)
    await db_session.commit()

    with pytest.raises(InvalidStateError):
        await service.confirm_invoice(invoice.uuid, PUBLIC_ACTOR)

    invoice = await service.send_invoice(invoice.uuid, company_actor)
    await db_session.commit()
    assert invoice.status == InvoiceStatus.SENT

    received = await service.get_invoice(invoice.uuid, recipient_actor)
    assert received.id == invoice.id

    invoice = await service.confirm_invoice(invoice.uuid, PUBLIC_ACTOR)
    await db_session.commit()
    assert invoice.status == InvoiceStatus.CONFIRMED
    assert invoice.bill is not None
    assert invoice.bill.company_id == test_company.id
    assert invoice.bill.status == BillStatus.PENDING

    with pytest.raises(ForbiddenError):
        await service.mark_paid(invoice.uuid, recipient_actor)

    invoice = await service.mark_paid(invoice.uuid, company_actor, transaction_hash="0xfeed")
    await db_session.commit()
    assert invoice.status == InvoiceStatus.PAID
    assert invoice.paid_at is not None
    assert invoice.bill.status == BillStatus.PAID
    assert invoice.bill.transaction_hash == "0xfeed"

    # PAID is terminal
    with pytest.raises(InvalidStateError):
        await service.cancel_invoice(invoice.uuid, company_actor)


@pytest.mark.asyncio
async def test_cancel_confirmed_b2b_invoice_deletes_bill(
    db_session: AsyncSession,
    test_company: Company,
    test_client_record: Client,
    company_actor: Actor,
) -> None:
    """Test cancelling after confirmation removes the pending bill."""
    from invoicing.services.b2b_invoice_service import B2BInvoiceService
    from invoicing.services.bill_service import BillService

    service = B2BInvoiceService(db_session)
    invoice = await service.create_invoice(test_company.id, _client_invoice(test_client_record), actor=company_actor)
    await service.send_invoice(invoice.uuid, company_actor)
    invoice = await service.confirm_invoice(invoice.uuid, PUBLIC_ACTOR)
    await db_session.commit()
    assert invoice.bill is not None

    invoice = await service.cancel_invoice(invoice.uuid, company_actor)
    await db_session.commit()

    assert invoice.status == InvoiceStatus.CANCELLED
    assert invoice.bill is None
    assert await BillService(db_session).list_bills(test_company.id) == []


@pytest.mark.asyncio
async def test_public_link_hides_drafts(
    db_session: AsyncSession,
    test_company: Company,
    test_client_record: Client,
    company_actor: Actor,
) -> None:
    """Test drafts are not reachable through the public link."""
    from invoicing.services.b2b_invoice_service import B2BInvoiceService

    service = B2BInvoiceService(db_session)
    invoice = await service.create_invoice(test_company.id, _client_invoice(test_client_record), actor=company_actor)
    await db_session.commit()

    with pytest.raises(NotFoundError):
        await service.get_public_invoice(invoice.uuid)

    await service.send_invoice(invoice.uuid, company_actor)
    await db_session.commit()

    public = await service.get_public_invoice(invoice.uuid)
    assert public.status == InvoiceStatus.SENT


@pytest.mark.asyncio
async def test_update_draft_replaces_items(
    db_session: AsyncSession,
    test_company: Company,
    test_client_record: Client,
    company_actor: Actor,
) -> None:
    """Test updating a draft recomputes totals; sent invoices are locked."""
    from invoicing.services.b2b_invoice_service import B2BInvoiceService

    service = B2BInvoiceService(db_session)
    invoice = await service.create_invoice(test_company.id, _client_invoice(test_client_record), actor=company_actor)
    await db_session.commit()

    update = B2BInvoiceUpdate(
        memo="Thanks for your business",
        discount=Decimal("10"),
        items=[InvoiceItemCreate(description="Retainer", quantity=Decimal("1"), unit_price=Decimal("500"))],
    )
    invoice = await service.update_invoice(invoice.uuid, company_actor, update)
    await db_session.commit()

    assert invoice.memo == "Thanks for your business"
    assert len(invoice.items) == 1
    # (500 - 10) + 10% tax
    assert invoice.total == Decimal("539.00")

    await service.send_invoice(invoice.uuid, company_actor)
    await db_session.commit()

    with pytest.raises(InvalidStateError):
        await service.update_invoice(invoice.uuid, company_actor, B2BInvoiceUpdate(memo="late edit"))


@pytest.mark.asyncio
async def test_list_directions_and_stats(
    db_session: AsyncSession,
    test_company: Company,
    other_company: Company,
    test_client_record: Client,
    company_actor: Actor,
    recipient_actor: Actor,
) -> None:
    """Test sent/received listings and stats exclude cancelled amounts."""
    from invoicing.services.b2b_invoice_service import B2BInvoiceService

    service = B2BInvoiceService(db_session)
    kept = await service.create_invoice(test_company.id, _client_invoice(test_client_record), actor=company_actor)
    dropped = await service.create_invoice(
        test_company.id, _client_invoice(test_client_record, currency="EUR"), actor=company_actor
    )
    await db_session.commit()
    await service.send_invoice(kept.uuid, company_actor)
    await service.cancel_invoice(dropped.uuid, company_actor)
    await db_session.commit()

    sent, sent_total = await service.list_invoices(test_company.id, company_actor, direction=B2BDirection.SENT)
    assert sent_total == 2
    received, received_total = await service.list_invoices(
        test_company.id, company_actor, direction=B2BDirection.RECEIVED
    )
    assert received_total == 0

    inbox, inbox_total = await service.list_invoices(other_company.id, recipient_actor, status=InvoiceStatus.SENT)
    assert inbox_total == 1
    assert inbox[0].id == kept.id

    searched, searched_total = await service.list_invoices(
        other_company.id, recipient_actor, search=test_company.name[:5]
    )
    assert searched_total == 2

    euros, euros_total = await service.list_invoices(test_company.id, company_actor, currency="eur")
    assert euros_total == 1
    assert euros[0].id == dropped.id

    stats = await service.get_stats(test_company.id, company_actor)
    assert stats.sent.total == 2
    assert stats.sent.by_status["SENT"] == 1
    assert stats.sent.by_status["CANCELLED"] == 1
    assert stats.sent.total_amount == Decimal("275.00")
    assert stats.sent.total_amount_by_currency == {"USD": Decimal("275.00")}
    assert stats.received.total == 0


@pytest.mark.asyncio
async def test_update_ignores_null_for_required_fields(
    db_session: AsyncSession,
    test_company: Company,
    test_client_record: Client,
    company_actor: Actor,
) -> None:
    """Test explicit nulls keep due date and sender details while clearing optional fields."""
    from invoicing.services.b2b_invoice_service import B2BInvoiceService

    service = B2BInvoiceService(db_session)
    invoice = await service.create_invoice(
        test_company.id, _client_invoice(test_client_record, memo="Net 30"), actor=company_actor
    )
    await db_session.commit()
    due_date = invoice.due_date
    from_details = dict(invoice.from_details)

    invoice = await service.update_invoice(
        invoice.uuid,
        company_actor,
        B2BInvoiceUpdate(due_date=None, from_details=None, memo=None),
    )
    await db_session.commit()

    assert invoice.due_date == due_date
    assert invoice.from_details == from_details
    assert invoice.memo is None
    assert invoice.total == Decimal("275.00")
