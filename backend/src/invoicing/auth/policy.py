"""Invoice authorization policy.

One function answers "may this actor perform this action on this invoice"
for both invoice variants:

- Payroll invoices: the employer company sends, cancels, deletes and edits
  items; the employee (exact match on the stamped email) reviews, confirms
  and updates payment details.
- B2B invoices: the sender company drives the lifecycle; confirmation is a
  public action open to the recipient.
- The system actor runs sweeps (overdue marking).

Visibility is checked separately so callers can answer NotFound for actors
outside the invoice's scope and Forbidden for visible but unauthorized ones.
"""
import enum
from dataclasses import dataclass, field
from typing import Any, FrozenSet

from invoicing.models.invoice import InvoiceType


class InvoiceAction(str, enum.Enum):
    """Actions that can be requested on an invoice."""

    VIEW = "view"
    SEND = "send"
    REVIEW = "review"
    CONFIRM = "confirm"
    MARK_PAID = "mark_paid"
    SETTLE = "settle"
    MARK_OVERDUE = "mark_overdue"
    CANCEL = "cancel"
    DELETE = "delete"
    UPDATE = "update"
    EDIT_ITEMS = "edit_items"


@dataclass(frozen=True)
class Actor:
    """Authenticated caller: an email plus the companies the caller belongs to."""

    email: str | None = None
    company_ids: FrozenSet[int] = field(default_factory=frozenset)
    is_system: bool = False
    subject: str | None = None

    def is_member(self, company_id: int | None) -> bool:
        return company_id is not None and company_id in self.company_ids

    def matches_email(self, email: str | None) -> bool:
        return bool(self.email) and bool(email) and self.email == email


PUBLIC_ACTOR = Actor()
SYSTEM_ACTOR = Actor(email=None, is_system=True, subject="system")


_PAYROLL_COMPANY_ACTIONS = frozenset(
    {InvoiceAction.VIEW, InvoiceAction.SEND, InvoiceAction.CANCEL, InvoiceAction.DELETE,
     InvoiceAction.EDIT_ITEMS, InvoiceAction.SETTLE}
)
_PAYROLL_EMPLOYEE_ACTIONS = frozenset(
    {InvoiceAction.VIEW, InvoiceAction.REVIEW, InvoiceAction.CONFIRM, InvoiceAction.UPDATE}
)
_B2B_SENDER_ACTIONS = frozenset(
    {InvoiceAction.VIEW, InvoiceAction.SEND, InvoiceAction.MARK_PAID, InvoiceAction.CANCEL,
     InvoiceAction.DELETE, InvoiceAction.UPDATE, InvoiceAction.EDIT_ITEMS, InvoiceAction.SETTLE}
)
_B2B_RECIPIENT_ACTIONS = frozenset({InvoiceAction.VIEW, InvoiceAction.CONFIRM, InvoiceAction.SETTLE})
_PUBLIC_ACTIONS = frozenset({InvoiceAction.CONFIRM})
_SYSTEM_ACTIONS = frozenset({InvoiceAction.MARK_OVERDUE, InvoiceAction.VIEW})


def authorize(actor: Actor, invoice: Any, action: InvoiceAction) -> bool:
    """
    Decide whether ``actor`` may perform ``action`` on ``invoice``.

    Args:
        actor: Caller identity
        invoice: PayrollInvoice or B2BInvoice
        action: Requested action

    Returns:
        True when the action is allowed
    """
    if actor.is_system:
        return action in _SYSTEM_ACTIONS

    if invoice.invoice_type == InvoiceType.EMPLOYEE:
        if actor.is_member(invoice.company_id) and action in _PAYROLL_COMPANY_ACTIONS:
            return True
        return actor.matches_email(invoice.employee_email) and action in _PAYROLL_EMPLOYEE_ACTIONS

    if action in _PUBLIC_ACTIONS:
        return True
    if actor.is_member(invoice.from_company_id) and action in _B2B_SENDER_ACTIONS:
        return True
    return actor.is_member(invoice.to_company_id) and action in _B2B_RECIPIENT_ACTIONS


def can_view(actor: Actor, invoice: Any) -> bool:
    """Whether the invoice is inside the actor's visibility scope."""
    return authorize(actor, invoice, InvoiceAction.VIEW)


def is_public_action(invoice: Any, action: InvoiceAction) -> bool:
    """Actions anyone holding the invoice link may perform."""
    return invoice.invoice_type == InvoiceType.B2B and action in _PUBLIC_ACTIONS
