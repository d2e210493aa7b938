"""Invoice item service: item mutations and total recalculation."""
from typing import Iterable
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.auth.policy import Actor, InvoiceAction
from invoicing.exceptions import NotFoundError
from invoicing.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from invoicing.schemas.error import ErrorCode
from invoicing.schemas.item import InvoiceItemCreate, InvoiceItemUpdate, ItemOrder
from invoicing.services.invoice_queries import get_invoice_for_actor
from invoicing.services.item_engine import InvoiceItemEngine
from invoicing.services.state_machine import InvoiceStateMachine
from invoicing.utils.money import to_decimal

logger = structlog.get_logger(__name__)

EDITABLE_STATUSES = frozenset({InvoiceStatus.DRAFT})
MONEY_FIELDS = frozenset({"quantity", "unit_price", "tax_rate", "discount"})
REQUIRED_ITEM_FIELDS = MONEY_FIELDS | {"description", "order"}


def build_item(data: InvoiceItemCreate, order: int) -> InvoiceItem:
    """Create an item model from request data, validating monetary precision."""
    return InvoiceItem(
        description=data.description,
        quantity=to_decimal(data.quantity, "quantity"),
        unit_price=to_decimal(data.unit_price, "unit_price"),
        unit=data.unit,
        tax_rate=to_decimal(data.tax_rate, "tax_rate"),
        discount=to_decimal(data.discount, "discount"),
        order=data.order if data.order is not None else order,
        extra_metadata=data.extra_metadata,
    )


def build_items(items: Iterable[InvoiceItemCreate]) -> list[InvoiceItem]:
    """Create item models, defaulting ``order`` to the position in the request."""
    return [build_item(data, index) for index, data in enumerate(items)]


def sort_items(invoice: Invoice) -> None:
    """Keep the in-memory item list in display order after a mutation."""
    invoice.items.sort(key=lambda item: (item.order, item.id or 0))


class InvoiceItemService:
    """
    Service layer for invoice items.

    Every mutation recomputes the invoice totals through
    :class:`InvoiceItemEngine` before flushing, so items and totals are
    written in the same transaction.
    """

    def __init__(self, db: AsyncSession):
        """Initialize item service with database session."""
        self.db = db
        self.machine = InvoiceStateMachine(db)

    async def _editable_invoice(self, invoice_uuid: UUID, actor: Actor) -> Invoice:
        invoice = await get_invoice_for_actor(self.db, invoice_uuid, actor)
        self.machine.guard(invoice, actor, InvoiceAction.EDIT_ITEMS)
        self.machine.require_status(
            invoice, EDITABLE_STATUSES, "Invoice items can only be changed while the invoice is a draft"
        )
        return invoice

    @staticmethod
    def _find_item(invoice: Invoice, item_id: int) -> InvoiceItem:
        for item in invoice.items:
            if item.id == item_id:
                return item
        raise NotFoundError("Invoice item not found", code=ErrorCode.INVOICE_ITEM_NOT_FOUND)

    async def _recalculate(self, invoice: Invoice) -> None:
        totals = InvoiceItemEngine.apply_totals(invoice)
        await self.db.flush()
        sort_items(invoice)
        logger.info(
            "invoice_totals_recalculated",
            invoice_id=invoice.id,
            item_count=len(invoice.items),
            subtotal=str(totals.subtotal),
            total=str(totals.total),
        )

    async def list_items(self, invoice_uuid: UUID, actor: Actor) -> list[InvoiceItem]:
        """List the items of a visible invoice in display order."""
        invoice = await get_invoice_for_actor(self.db, invoice_uuid, actor)
        return list(invoice.items)

    async def add_item(self, invoice_uuid: UUID, actor: Actor, data: InvoiceItemCreate) -> InvoiceItem:
        """
        Append an item to a draft invoice.

        Args:
            invoice_uuid: Invoice UUID
            actor: Caller identity
            data: Item data; ``order`` defaults to after the last item

        Returns:
            Created item with its computed total
        """
        invoice = await self._editable_invoice(invoice_uuid, actor)
        next_order = max((item.order for item in invoice.items), default=-1) + 1
        item = build_item(data, next_order)
        invoice.items.append(item)
        await self._recalculate(invoice)
        return item

    async def update_item(
        self,
        invoice_uuid: UUID,
        item_id: int,
        actor: Actor,
        data: InvoiceItemUpdate,
    ) -> InvoiceItem:
        """Update the provided fields of one item and recompute totals."""
        invoice = await self._editable_invoice(invoice_uuid, actor)
        item = self._find_item(invoice, item_id)

        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None and field in REQUIRED_ITEM_FIELDS:
                continue
            if field in MONEY_FIELDS:
                value = to_decimal(value, field)
            setattr(item, field, value)

        await self._recalculate(invoice)
        return item

    async def delete_item(self, invoice_uuid: UUID, item_id: int, actor: Actor) -> Invoice:
        """Remove one item and recompute totals."""
        invoice = await self._editable_invoice(invoice_uuid, actor)
        item = self._find_item(invoice, item_id)
        invoice.items.remove(item)
        await self._recalculate(invoice)
        logger.info("invoice_item_deleted", invoice_id=invoice.id, item_id=item_id)
        return invoice

    async def reorder_items(self, invoice_uuid: UUID, actor: Actor, orders: list[ItemOrder]) -> list[InvoiceItem]:
        """
        Persist new display positions verbatim.

        Gaps and arbitrary integers are kept as given; positions are not renumbered.

        Raises:
            NotFoundError: If any item does not belong to the invoice
        """
        invoice = await self._editable_invoice(invoice_uuid, actor)
        for entry in orders:
            self._find_item(invoice, entry.id).order = entry.order
        await self._recalculate(invoice)
        return list(invoice.items)

    async def replace_items(self, invoice_uuid: UUID, actor: Actor, items: list[InvoiceItemCreate]) -> Invoice:
        """Replace every item of a draft invoice in one step."""
        invoice = await self._editable_invoice(invoice_uuid, actor)
        await self.replace_on(invoice, items)
        return invoice

    async def replace_on(self, invoice: Invoice, items: list[InvoiceItemCreate]) -> None:
        """Replace the items of an already authorized invoice and recompute totals."""
        invoice.items = build_items(items)
        await self._recalculate(invoice)
