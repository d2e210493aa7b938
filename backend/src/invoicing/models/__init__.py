"""SQLAlchemy ORM models for the invoicing engine."""
# Import all models here to ensure they are registered with Alembic

from invoicing.models.base import Base
from invoicing.models.directory import Client, Company, Employee, Payroll
from invoicing.models.invoice import (
    B2BInvoice,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    InvoiceType,
    PayrollInvoice,
    TERMINAL_STATUSES,
)
from invoicing.models.schedule import InvoiceSchedule, ScheduleFrequency
from invoicing.models.bill import Bill, BillStatus
from invoicing.models.sequence import InvoiceNumberSequence

__all__ = [
    "Base",
    "Company",
    "Employee",
    "Payroll",
    "Client",
    "Invoice",
    "PayrollInvoice",
    "B2BInvoice",
    "InvoiceItem",
    "InvoiceStatus",
    "InvoiceType",
    "TERMINAL_STATUSES",
    "InvoiceSchedule",
    "ScheduleFrequency",
    "Bill",
    "BillStatus",
    "InvoiceNumberSequence",
]
