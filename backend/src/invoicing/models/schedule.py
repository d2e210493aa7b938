"""Recurring invoice schedule model."""
import enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Enum as SQLEnum, ForeignKey, Integer
from sqlalchemy.orm import relationship

from invoicing.models.base import Base, JSONType


class ScheduleFrequency(str, enum.Enum):
    """How often a schedule generates an invoice."""

    MONTHLY = "MONTHLY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    QUARTERLY = "QUARTERLY"


class InvoiceSchedule(Base):
    """
    Standing recurrence definition.

    Scoped either to a payroll or to a (client, company) pair. Schedules are
    never deleted automatically; generation only advances
    ``next_generate_date`` and stamps ``last_generated_at``.
    """

    __tablename__ = "invoice_schedules"
    __table_args__ = (
        CheckConstraint(
            "(payroll_id IS NULL) <> (client_id IS NULL)",
            name="ck_invoice_schedules_single_scope",
        ),
    )

    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    payroll_id = Column(Integer, ForeignKey("payrolls.id", ondelete="CASCADE"), nullable=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=True, index=True)

    frequency = Column(SQLEnum(ScheduleFrequency), nullable=False, default=ScheduleFrequency.MONTHLY)
    day_of_month = Column(Integer, nullable=True)
    day_of_week = Column(Integer, nullable=True)  # 0 = Sunday ... 6 = Saturday
    generate_days_before = Column(Integer, nullable=False, default=0)
    auto_send = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    next_generate_date = Column(DateTime, nullable=False, index=True)
    last_generated_at = Column(DateTime, nullable=True)
    invoice_template = Column(JSONType, nullable=True)
    extra_metadata = Column("metadata", JSONType, nullable=True)

    payroll = relationship("Payroll", lazy="selectin")
    client = relationship("Client", lazy="selectin")

    @property
    def is_b2b(self) -> bool:
        return self.client_id is not None

    def __repr__(self) -> str:
        return (
            f"<InvoiceSchedule(id={self.id}, frequency={self.frequency}, "
            f"next_generate_date={self.next_generate_date}, is_active={self.is_active})>"
        )
