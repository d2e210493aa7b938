"""Invoice number generation backed by atomic per-scope counters."""
import re
from datetime import datetime
from typing import Awaitable, Callable, NamedTuple

import structlog
from dateutil.relativedelta import relativedelta
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.models.invoice import B2BInvoice, PayrollInvoice
from invoicing.models.sequence import InvoiceNumberSequence
from invoicing.utils.clock import utcnow

logger = structlog.get_logger(__name__)

B2B_PREFIX = "INV-B2B-"
_TRAILING_SEQUENCE = re.compile(r"(\d{4,})$")


class InvoiceNumber(NamedTuple):
    """Generated number and the counter scope that produced it."""

    number: str
    scope: str


class InvoiceNumberGenerator:
    """
    Assigns scope-sequential invoice numbers.

    The next value of a scope is taken with a single
    ``UPDATE ... SET last_value = last_value + 1 RETURNING last_value``; the
    row lock serializes concurrent writers of the same scope. The first use
    of a scope seeds the counter from invoices that already exist.
    """

    def __init__(self, db: AsyncSession):
        """Initialize generator with database session."""
        self.db = db

    async def payroll_sequence(self, payroll_id: int, employee_id: int) -> InvoiceNumber:
        """
        Next number for a (payroll, employee) pair.

        Format: INV-{seq:04d} (e.g., INV-0001, INV-0002)
        """
        scope = f"payroll:{payroll_id}:{employee_id}"

        async def seed() -> int:
            result = await self.db.execute(
                select(func.count())
                .select_from(PayrollInvoice)
                .where(PayrollInvoice.payroll_id == payroll_id, PayrollInvoice.employee_id == employee_id)
            )
            return result.scalar() or 0

        seq = await self._next_value(scope, seed)
        return InvoiceNumber(f"INV-{seq:04d}", scope)

    async def monthly_sequence(self, company_id: int, now: datetime | None = None) -> InvoiceNumber:
        """
        Next number for a company within the current calendar month.

        Format: INV-{yyyy}{mm}-{company_id}-{seq:04d} (e.g., INV-202401-7-0003)
        """
        now = now or utcnow()
        month_start = datetime(now.year, now.month, 1)
        month_end = month_start + relativedelta(months=1)
        period = f"{now.year}{now.month:02d}"
        scope = f"monthly:{company_id}:{period}"

        async def seed() -> int:
            result = await self.db.execute(
                select(func.count())
                .select_from(PayrollInvoice)
                .where(
                    PayrollInvoice.company_id == company_id,
                    PayrollInvoice.created_at >= month_start,
                    PayrollInvoice.created_at < month_end,
                )
            )
            return result.scalar() or 0

        seq = await self._next_value(scope, seed)
        return InvoiceNumber(f"INV-{period}-{company_id}-{seq:04d}", scope)

    async def b2b_sequence(
        self,
        company_id: int,
        to_company_id: int | None = None,
        to_company_name: str | None = None,
    ) -> InvoiceNumber:
        """
        Next B2B number for a (sender, recipient) pair.

        The recipient is identified by company id when registered, otherwise by name.

        Format: INV-B2B-{seq:04d}
        """
        if to_company_id is not None:
            scope = f"b2b:{company_id}:id:{to_company_id}"
            recipient_filter = B2BInvoice.to_company_id == to_company_id
        else:
            scope = f"b2b:{company_id}:name:{to_company_name or ''}"
            recipient_filter = B2BInvoice.to_company_name == to_company_name

        async def seed() -> int:
            result = await self.db.execute(
                select(B2BInvoice.invoice_number)
                .where(
                    B2BInvoice.from_company_id == company_id,
                    B2BInvoice.invoice_number.startswith(B2B_PREFIX),
                    recipient_filter,
                )
                .order_by(B2BInvoice.invoice_number.desc())
                .limit(1)
            )
            return parse_sequence(result.scalar_one_or_none())

        seq = await self._next_value(scope, seed)
        return InvoiceNumber(f"{B2B_PREFIX}{seq:04d}", scope)

    async def _next_value(self, scope: str, seed: Callable[[], Awaitable[int]]) -> int:
        """Increment and return the counter of ``scope``, creating it on first use."""
        value = await self._increment(scope)
        if value is not None:
            return value

        initial = await seed()
        try:
            async with self.db.begin_nested():
                self.db.add(InvoiceNumberSequence(scope=scope, last_value=initial + 1))
        except IntegrityError:
            # Another writer created the scope first; take the next value from its row
            logger.info("invoice_sequence_created_concurrently", scope=scope)
            value = await self._increment(scope)
            if value is None:
                raise
            return value

        logger.info("invoice_sequence_created", scope=scope, seeded_from=initial)
        return initial + 1

    async def _increment(self, scope: str) -> int | None:
        result = await self.db.execute(
            update(InvoiceNumberSequence)
            .where(InvoiceNumberSequence.scope == scope)
            .values(last_value=InvoiceNumberSequence.last_value + 1, updated_at=utcnow())
            .returning(InvoiceNumberSequence.last_value)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()


def parse_sequence(invoice_number: str | None) -> int:
    """Return the trailing sequence of an invoice number, or 0 when absent or unparsable."""
    if not invoice_number:
        return 0
    match = _TRAILING_SEQUENCE.search(invoice_number)
    return int(match.group(1)) if match else 0
