"""Bill model: payable record linked to a confirmed invoice."""
import enum

from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from invoicing.models.base import Base, JSONType


class BillStatus(str, enum.Enum):
    """Bill payment status."""

    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class Bill(Base):
    """One bill per invoice, owned by the company that tracks the payable."""

    __tablename__ = "bills"

    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, unique=True)
    status = Column(SQLEnum(BillStatus), nullable=False, default=BillStatus.PENDING, index=True)
    paid_at = Column(DateTime, nullable=True)
    transaction_hash = Column(String(255), nullable=True)
    extra_metadata = Column("metadata", JSONType, nullable=True)

    invoice = relationship("Invoice", back_populates="bill", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Bill(id={self.id}, invoice_id={self.invoice_id}, status={self.status})>"
