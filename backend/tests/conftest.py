"""Pytest configuration and fixtures for async testing."""
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

import invoicing.models  # noqa: F401
from invoicing.auth.jwt import jwt_auth
from invoicing.auth.policy import Actor
from invoicing.database import Base, get_db
from invoicing.main import app
from invoicing.models.directory import Client, Company, Employee, Payroll
from utils.factories import ClientFactory, CompanyFactory, EmployeeFactory, PayrollFactory


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Create a SQLite engine backed by a per-test database file.

    pysqlite's implicit transaction handling is disabled so SAVEPOINTs
    (used by invoice numbering and bill side effects) behave as on PostgreSQL.

    Yields:
        AsyncEngine with every table created
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'invoicing_test.db'}", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.

    Yields:
        AsyncSession: Database session for testing
    """
    session_factory = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing with database dependency override.

    Args:
        db_session: Test database session fixture

    Yields:
        AsyncClient: Async HTTP client for API testing
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        """Override database dependency to use test database."""
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    # Clean up
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def auth_headers() -> Callable[..., dict[str, str]]:
    """
    Build Authorization headers for a user.

    Returns:
        Callable taking an email and company IDs, returning request headers
    """

    def _headers(email: str, company_ids: tuple[int, ...] = (), company_id: int | None = None) -> dict[str, str]:
        token = jwt_auth.create_access_token(subject=email, email=email, company_ids=company_ids)
        headers = {"Authorization": f"Bearer {token}"}
        if company_id is not None:
            headers["X-Company-Id"] = str(company_id)
        return headers

    return _headers


@pytest_asyncio.fixture(scope="function")
async def test_company(db_session: AsyncSession) -> Company:
    """Create the employer / sender company."""
    company = Company(**CompanyFactory.create())
    db_session.add(company)
    await db_session.commit()
    return company


@pytest_asyncio.fixture(scope="function")
async def other_company(db_session: AsyncSession) -> Company:
    """Create a second registered company (B2B recipient)."""
    company = Company(**CompanyFactory.create())
    db_session.add(company)
    await db_session.commit()
    return company


@pytest_asyncio.fixture(scope="function")
async def test_employee(db_session: AsyncSession) -> Employee:
    """Create an employee."""
    employee = Employee(**EmployeeFactory.create({"email": "jane.doe@example.com"}))
    db_session.add(employee)
    await db_session.commit()
    return employee


@pytest_asyncio.fixture(scope="function")
async def test_payroll(db_session: AsyncSession, test_company: Company, test_employee: Employee) -> Payroll:
    """Create a monthly payroll of 1000.00 USD paying the test employee."""
    payroll = Payroll(
        **PayrollFactory.create(
            {
                "amount": Decimal("1000.00"),
                "currency": "USD",
                "pay_date": datetime(2024, 1, 31),
            }
        ),
        company=test_company,
        employee=test_employee,
    )
    db_session.add(payroll)
    await db_session.commit()
    return payroll


@pytest_asyncio.fixture(scope="function")
async def test_client_record(db_session: AsyncSession, test_company: Company, other_company: Company) -> Client:
    """Create an address-book client of the test company linked to the other company."""
    client = Client(
        **ClientFactory.create(
            {
                "company_id": test_company.id,
                "linked_company_id": other_company.id,
                "name": other_company.name,
            }
        )
    )
    db_session.add(client)
    await db_session.commit()
    return client


@pytest.fixture(scope="function")
def company_actor(test_company: Company) -> Actor:
    """Member of the test company."""
    return Actor(email="owner@example.com", company_ids=frozenset({test_company.id}), subject="owner")


@pytest.fixture(scope="function")
def employee_actor(test_employee: Employee) -> Actor:
    """The payroll employee, identified by email only."""
    return Actor(email=test_employee.email, subject="employee")


@pytest.fixture(scope="function")
def recipient_actor(other_company: Company) -> Actor:
    """Member of the B2B recipient company."""
    return Actor(email="ap@example.com", company_ids=frozenset({other_company.id}), subject="recipient")
