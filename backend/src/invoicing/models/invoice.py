"""Invoice models.

Payroll and B2B invoices share the ``invoices`` table through single-table
inheritance keyed on ``invoice_type``; each subclass maps only the columns of
its own variant.
"""
import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from invoicing.models.base import Base, DecimalString, JSONType


class InvoiceType(str, enum.Enum):
    """Invoice variant discriminator."""

    EMPLOYEE = "EMPLOYEE"
    B2B = "B2B"


class InvoiceStatus(str, enum.Enum):
    """Invoice lifecycle status."""

    DRAFT = "DRAFT"
    SENT = "SENT"
    REVIEWED = "REVIEWED"
    CONFIRMED = "CONFIRMED"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED})


class Invoice(Base):
    """
    Invoice shared shape.

    Monetary columns hold fixed-point strings; totals are always written by
    the item engine and reconcile with the invoice items.
    """

    __tablename__ = "invoices"
    __table_args__ = (UniqueConstraint("number_scope", "invoice_number", name="uq_invoices_scope_number"),)

    invoice_type = Column(String(16), nullable=False, index=True)
    invoice_number = Column(String(64), nullable=False, index=True)  # INV-0001, INV-B2B-0001, etc.
    number_scope = Column(String(255), nullable=False)
    status = Column(SQLEnum(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT, index=True)

    issue_date = Column(DateTime, nullable=False, index=True)
    due_date = Column(DateTime, nullable=False, index=True)
    sent_at = Column(DateTime, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    confirmed_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    currency = Column(String(3), nullable=False, default="USD")
    subtotal = Column(DecimalString, nullable=False, default="0.00")
    tax_rate = Column(DecimalString, nullable=False, default="0")
    tax_amount = Column(DecimalString, nullable=False, default="0.00")
    discount = Column(DecimalString, nullable=False, default="0")
    total = Column(DecimalString, nullable=False, default="0.00")

    from_details = Column(JSONType, nullable=False, default=dict)
    to_details = Column(JSONType, nullable=False, default=dict)

    email_to = Column(String(255), nullable=True)
    email_cc = Column(JSONType, nullable=True)
    email_bcc = Column(JSONType, nullable=True)

    payment_network = Column(JSONType, nullable=True)
    payment_token = Column(JSONType, nullable=True)
    payment_wallet_address = Column(String(255), nullable=True)

    memo = Column(Text, nullable=True)
    footer = Column(Text, nullable=True)
    terms = Column(Text, nullable=True)
    extra_metadata = Column("metadata", JSONType, nullable=True)

    is_auto_generated = Column(Boolean, nullable=False, default=False)
    schedule_id = Column(Integer, ForeignKey("invoice_schedules.id", ondelete="SET NULL"), nullable=True, index=True)

    # Relationships
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.order",
        lazy="selectin",
    )
    bill = relationship("Bill", back_populates="invoice", uselist=False, lazy="selectin")

    __mapper_args__ = {"polymorphic_on": invoice_type}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<{type(self).__name__}(id={self.id}, number={self.invoice_number}, "
            f"status={self.status.value if self.status else None}, total={self.total})>"
        )


class PayrollInvoice(Invoice):
    """Invoice issued by an employer to its own employee for one pay cycle."""

    payroll_id = Column(Integer, ForeignKey("payrolls.id", ondelete="CASCADE"), nullable=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    # Stamped at creation; subject actions match this email exactly
    employee_email = Column(String(255), nullable=True, index=True)

    __mapper_args__ = {"polymorphic_identity": InvoiceType.EMPLOYEE.value}


class B2BInvoice(Invoice):
    """Invoice issued by one company to a registered company or an unregistered client."""

    from_company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    to_company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    to_company_name = Column(String(255), nullable=True)
    to_company_email = Column(String(255), nullable=True)
    to_company_address = Column(String(255), nullable=True)
    to_company_tax_id = Column(String(64), nullable=True)
    to_company_contact_name = Column(String(255), nullable=True)
    email_subject = Column(String(255), nullable=True)
    email_body = Column(Text, nullable=True)

    __mapper_args__ = {"polymorphic_identity": InvoiceType.B2B.value}


class InvoiceItem(Base):
    """Line item owned by exactly one invoice."""

    __tablename__ = "invoice_items"

    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    description = Column(String(500), nullable=False)
    quantity = Column(DecimalString, nullable=False, default="1")
    unit_price = Column(DecimalString, nullable=False)
    unit = Column(String(32), nullable=True)
    tax_rate = Column(DecimalString, nullable=False, default="0")
    discount = Column(DecimalString, nullable=False, default="0")
    total = Column(DecimalString, nullable=False, default="0.00")
    order = Column(Integer, nullable=False, default=0)
    extra_metadata = Column("metadata", JSONType, nullable=True)

    invoice = relationship("Invoice", back_populates="items")

    def __repr__(self) -> str:
        return f"<InvoiceItem(id={self.id}, invoice_id={self.invoice_id}, total={self.total})>"
