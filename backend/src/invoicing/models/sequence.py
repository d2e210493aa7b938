"""Per-scope invoice number counter."""
from sqlalchemy import Column, DateTime, Integer, String

from invoicing.database import Base as DeclarativeBase
from invoicing.utils.clock import utcnow


class InvoiceNumberSequence(DeclarativeBase):
    """
    Counter row holding the last issued sequence value for one numbering scope.

    Scopes look like ``payroll:{payroll_id}:{employee_id}``,
    ``monthly:{company_id}:{yyyymm}`` or ``b2b:{company_id}:id:{to_company_id}``.
    """

    __tablename__ = "invoice_number_sequences"

    scope = Column(String(255), primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
