"""Lookups of payrolls, clients and companies."""
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.exceptions import NotFoundError
from invoicing.models.directory import Client, Company, Payroll
from invoicing.schemas.error import ErrorCode


class DirectoryService:
    """Read-only access to the records invoices are built from."""

    def __init__(self, db: AsyncSession):
        """Initialize directory service with database session."""
        self.db = db

    async def get_payroll(self, payroll_id: int, company_id: int | None = None) -> Payroll:
        """
        Get a payroll, optionally restricted to one company.

        Raises:
            NotFoundError: If the payroll does not exist or belongs to another company
        """
        query = select(Payroll).where(Payroll.id == payroll_id).execution_options(populate_existing=True)
        if company_id is not None:
            query = query.where(Payroll.company_id == company_id)
        result = await self.db.execute(query)
        payroll = result.scalar_one_or_none()
        if not payroll:
            raise NotFoundError("Payroll not found", code=ErrorCode.PAYROLL_NOT_FOUND)
        return payroll

    async def get_client(self, client_uuid: UUID, company_id: int) -> Client:
        """
        Get a client of a company by UUID.

        Raises:
            NotFoundError: If the client does not exist or belongs to another company
        """
        result = await self.db.execute(
            select(Client).where(Client.uuid == client_uuid, Client.company_id == company_id)
        )
        client = result.scalar_one_or_none()
        if not client:
            raise NotFoundError("Client not found", code=ErrorCode.CLIENT_NOT_FOUND)
        return client

    async def get_company(self, company_id: int) -> Company:
        """
        Get a company by ID.

        Raises:
            NotFoundError: If the company does not exist
        """
        company = await self.db.get(Company, company_id)
        if not company:
            raise NotFoundError("Company not found", code=ErrorCode.COMPANY_NOT_FOUND)
        return company


def company_snapshot(company: Company) -> dict:
    """Party details of a company, frozen onto an invoice at creation."""
    return {
        "name": company.name,
        "email": company.notification_email,
        "address_line1": company.address_line1,
        "address_line2": company.address_line2,
        "city": company.city,
        "country": company.country,
        "postal_code": company.postal_code,
        "tax_id": company.tax_id,
    }
