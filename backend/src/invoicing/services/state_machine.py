"""Invoice status state machine.

Every status change goes through :class:`InvoiceStateMachine`. A change
runs in three steps:

1. Guard: visibility, then authorization via
   :func:`invoicing.auth.policy.authorize`, then the transition table.
2. Write: set the new status and stamp the matching timestamp.
3. Side effects: notifications and bill updates. These are best-effort;
   bill work runs inside a SAVEPOINT so a failure cannot undo the
   transition, and every failure is logged.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, FrozenSet

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.auth.policy import Actor, InvoiceAction, authorize, can_view, is_public_action
from invoicing.exceptions import ForbiddenError, InvalidStateError, NotFoundError
from invoicing.integrations.notification_service import NotificationService, notification_service
from invoicing.metrics import (
    invoice_side_effect_failures_total,
    invoice_transitions_total,
    invoices_marked_overdue_total,
)
from invoicing.models.bill import BillStatus
from invoicing.models.invoice import Invoice, InvoiceStatus, InvoiceType
from invoicing.schemas.error import ErrorCode
from invoicing.services.bill_service import BillService
from invoicing.utils.clock import utcnow

logger = structlog.get_logger(__name__)

S = InvoiceStatus


@dataclass(frozen=True)
class Transition:
    """One row of the transition table."""

    sources: FrozenSet[InvoiceStatus]
    target: InvoiceStatus | None  # None removes the invoice
    error: str
    stamp: str | None = None


_SHARED = {
    InvoiceAction.SEND: Transition(frozenset({S.DRAFT}), S.SENT, "Only draft invoices can be sent", "sent_at"),
    InvoiceAction.SETTLE: Transition(
        frozenset({S.CONFIRMED, S.OVERDUE}), S.PAID, "Only confirmed or overdue invoices can be paid", "paid_at"
    ),
    InvoiceAction.MARK_OVERDUE: Transition(
        frozenset({S.SENT, S.REVIEWED, S.CONFIRMED}), S.OVERDUE, "Only open invoices can become overdue"
    ),
    InvoiceAction.CANCEL: Transition(
        frozenset({S.DRAFT, S.SENT, S.REVIEWED, S.CONFIRMED, S.OVERDUE}),
        S.CANCELLED,
        "Paid or cancelled invoices cannot be cancelled",
    ),
    InvoiceAction.DELETE: Transition(frozenset({S.DRAFT}), None, "Only draft invoices can be deleted"),
}

TRANSITIONS: dict[tuple[InvoiceType, InvoiceAction], Transition] = {
    **{(InvoiceType.EMPLOYEE, action): rule for action, rule in _SHARED.items()},
    **{(InvoiceType.B2B, action): rule for action, rule in _SHARED.items()},
    (InvoiceType.EMPLOYEE, InvoiceAction.REVIEW): Transition(
        frozenset({S.SENT}), S.REVIEWED, "Only sent invoices can be reviewed", "reviewed_at"
    ),
    (InvoiceType.EMPLOYEE, InvoiceAction.CONFIRM): Transition(
        frozenset({S.REVIEWED}), S.CONFIRMED, "Only reviewed invoices can be confirmed", "confirmed_at"
    ),
    (InvoiceType.B2B, InvoiceAction.CONFIRM): Transition(
        frozenset({S.SENT}), S.CONFIRMED, "Only sent invoices can be confirmed", "confirmed_at"
    ),
    (InvoiceType.B2B, InvoiceAction.MARK_PAID): Transition(
        frozenset({S.CONFIRMED}), S.PAID, "Only confirmed invoices can be marked as paid", "paid_at"
    ),
}

OVERDUE_SOURCES = TRANSITIONS[(InvoiceType.EMPLOYEE, InvoiceAction.MARK_OVERDUE)].sources


class InvoiceStateMachine:
    """Applies guarded status transitions to payroll and B2B invoices."""

    def __init__(self, db: AsyncSession, notifications: NotificationService | None = None):
        """
        Initialize state machine.

        Args:
            db: Database session; the caller owns the transaction
            notifications: Mail dispatcher (module default when None)
        """
        self.db = db
        self.notifications = notifications or notification_service

    def guard(self, invoice: Invoice, actor: Actor, action: InvoiceAction) -> None:
        """
        Check that ``actor`` may request ``action`` on ``invoice``.

        Raises:
            NotFoundError: If the invoice is outside the actor's scope
            ForbiddenError: If the actor can see the invoice but not act on it
        """
        if not can_view(actor, invoice) and not is_public_action(invoice, action):
            raise NotFoundError("Invoice not found", code=ErrorCode.INVOICE_NOT_FOUND)
        if not authorize(actor, invoice, action):
            logger.warning(
                "invoice_action_forbidden",
                invoice_id=invoice.id,
                action=action.value,
                actor=actor.email or actor.subject,
            )
            raise ForbiddenError(f"You are not allowed to {action.value.replace('_', ' ')} this invoice")

    @staticmethod
    def require_status(invoice: Invoice, allowed: FrozenSet[InvoiceStatus] | set, message: str) -> None:
        """Raise InvalidStateError unless the invoice is in one of ``allowed``."""
        if invoice.status not in allowed:
            raise InvalidStateError(message)

    async def transition(
        self,
        invoice: Invoice,
        actor: Actor,
        action: InvoiceAction,
        transaction_hash: str | None = None,
    ) -> Invoice | None:
        """
        Apply ``action`` to ``invoice``.

        Args:
            invoice: Invoice to transition (items and bill loaded)
            actor: Caller identity
            action: Requested action
            transaction_hash: Payment reference stored on the bill when marking paid

        Returns:
            The updated invoice, or None when the action deleted it

        Raises:
            NotFoundError: Invoice outside the actor's scope
            ForbiddenError: Actor not allowed to perform the action
            InvalidStateError: Transition not allowed from the current status
        """
        self.guard(invoice, actor, action)

        invoice_type = InvoiceType(invoice.invoice_type)
        rule = TRANSITIONS.get((invoice_type, action))
        if rule is None:
            raise InvalidStateError(f"Action {action.value} is not available for {invoice_type.value} invoices")
        if invoice.is_terminal:
            raise InvalidStateError(
                f"Invoice is {invoice.status.value} and can no longer change status"
                if action != InvoiceAction.CANCEL
                else rule.error
            )
        self.require_status(invoice, rule.sources, rule.error)

        previous = invoice.status
        invoice_transitions_total.labels(invoice_type=invoice_type.value, action=action.value).inc()

        if rule.target is None:
            await self.db.delete(invoice)
            await self.db.flush()
            logger.info("invoice_deleted", invoice_id=invoice.id, invoice_number=invoice.invoice_number)
            return None

        invoice.status = rule.target
        if rule.stamp:
            setattr(invoice, rule.stamp, utcnow())
        await self.db.flush()

        logger.info(
            "invoice_status_changed",
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            invoice_type=invoice_type.value,
            action=action.value,
            from_status=previous.value,
            to_status=invoice.status.value,
        )

        await self._after_transition(invoice, invoice_type, action, transaction_hash)
        return invoice

    async def mark_overdue(self, now: datetime | None = None) -> int:
        """
        Move every open invoice whose due date has passed to OVERDUE.

        Invoices due exactly at ``now`` are included. Repeated runs converge:
        already overdue invoices no longer match the filter.

        Returns:
            Number of invoices updated
        """
        now = now or utcnow()
        result = await self.db.execute(
            select(Invoice.id).where(Invoice.status.in_(OVERDUE_SOURCES), Invoice.due_date <= now)
        )
        invoice_ids = list(result.scalars().all())
        if invoice_ids:
            await self.db.execute(
                update(Invoice)
                .where(Invoice.id.in_(invoice_ids))
                .values(status=InvoiceStatus.OVERDUE, updated_at=utcnow())
                .execution_options(synchronize_session="evaluate")
            )
        count = len(invoice_ids)
        invoices_marked_overdue_total.inc(count)
        logger.info("invoices_marked_overdue", count=count, as_of=now.isoformat())
        return count

    async def _after_transition(
        self,
        invoice: Invoice,
        invoice_type: InvoiceType,
        action: InvoiceAction,
        transaction_hash: str | None,
    ) -> None:
        bills = BillService(self.db)

        if invoice_type == InvoiceType.EMPLOYEE:
            if action == InvoiceAction.SEND:
                await self.notify("invoice_sent", invoice, self.notifications.send_invoice_notification)
            elif action == InvoiceAction.CONFIRM:
                company_email = (invoice.to_details or {}).get("email")
                if company_email:
                    await self.notify(
                        "invoice_confirmed",
                        invoice,
                        lambda inv: self.notifications.send_invoice_confirmation_notification(inv, company_email),
                    )
                await self._bill_effect(
                    "bill_create", invoice, lambda: bills.create_from_invoice(invoice.uuid, invoice.company_id)
                )
        else:
            if action == InvoiceAction.SEND:
                await self.notify("b2b_invoice_sent", invoice, self.notifications.send_b2b_invoice_notification)
            elif action == InvoiceAction.CONFIRM:
                await self._bill_effect(
                    "bill_create", invoice, lambda: bills.create_from_invoice(invoice.uuid, invoice.from_company_id)
                )
                await self.notify(
                    "b2b_invoice_confirmed", invoice, self.notifications.send_b2b_confirmation_notification
                )
            elif action == InvoiceAction.MARK_PAID and invoice.bill is not None:
                bill = invoice.bill
                await self._bill_effect(
                    "bill_update",
                    invoice,
                    lambda: bills.update_status(bill.id, bill.company_id, BillStatus.PAID, transaction_hash),
                )

        if action == InvoiceAction.CANCEL and invoice.bill is not None:
            bill = invoice.bill
            await self._bill_effect("bill_delete", invoice, lambda: bills.delete(bill.uuid, bill.company_id))

    async def notify(
        self,
        effect: str,
        invoice: Invoice,
        send: Callable[[Invoice], Awaitable[Any]],
    ) -> None:
        """Send a notification; failures are counted and logged, never raised."""
        try:
            await send(invoice)
        except Exception as exc:
            invoice_side_effect_failures_total.labels(effect=effect).inc()
            logger.warning(
                "invoice_notification_failed",
                effect=effect,
                invoice_id=invoice.id,
                error=str(exc),
            )

    async def _bill_effect(
        self,
        effect: str,
        invoice: Invoice,
        run: Callable[[], Awaitable[Any]],
    ) -> None:
        try:
            async with self.db.begin_nested():
                await run()
        except Exception as exc:
            invoice_side_effect_failures_total.labels(effect=effect).inc()
            logger.warning(
                "invoice_bill_side_effect_failed",
                effect=effect,
                invoice_id=invoice.id,
                error=str(exc),
            )
        await self.db.refresh(invoice, attribute_names=["bill"])
