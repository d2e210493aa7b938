"""Directory records owned by other modules and read by the invoicing engine.

Companies, employees, payrolls and clients are managed elsewhere; the engine
only looks them up to snapshot party details onto invoices.
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from invoicing.models.base import Base, DecimalString, JSONType


class Company(Base):
    """Registered company that issues or receives invoices."""

    __tablename__ = "companies"

    name = Column(String(255), nullable=False)
    notification_email = Column(String(255), nullable=True)
    address_line1 = Column(String(255), nullable=True)
    address_line2 = Column(String(255), nullable=True)
    city = Column(String(120), nullable=True)
    country = Column(String(120), nullable=True)
    postal_code = Column(String(32), nullable=True)
    tax_id = Column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<Company(id={self.id}, name={self.name})>"


class Employee(Base):
    """Employee paid through a payroll."""

    __tablename__ = "employees"

    first_name = Column(String(120), nullable=False)
    last_name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    address = Column(String(255), nullable=True)
    city = Column(String(120), nullable=True)
    country = Column(String(120), nullable=True)
    postal_code = Column(String(32), nullable=True)
    wallet_address = Column(String(255), nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Payroll(Base):
    """Recurring payment of an employee by a company."""

    __tablename__ = "payrolls"

    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    description = Column(String(255), nullable=False, default="Payroll")
    amount = Column(DecimalString, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    payroll_cycle = Column(Integer, nullable=False, default=1)  # months per pay period
    pay_date = Column(DateTime, nullable=True)
    network = Column(JSONType, nullable=True)
    token = Column(JSONType, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    company = relationship("Company", lazy="selectin")
    employee = relationship("Employee", lazy="selectin")


class Client(Base):
    """Address-book entry of a company for B2B invoicing."""

    __tablename__ = "clients"

    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    # Set when the client is itself a registered company, so it can see received invoices
    linked_company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    address = Column(String(255), nullable=True)
    tax_id = Column(String(64), nullable=True)
    contact_name = Column(String(255), nullable=True)
    cc_emails = Column(JSONType, nullable=True)
