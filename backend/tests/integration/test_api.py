"""End-to-end tests through the HTTP API."""
from typing import Callable

import pytest
from httpx import AsyncClient

from invoicing.models.directory import Client, Company, Employee, Payroll


@pytest.mark.asyncio
async def test_health_endpoints(async_client: AsyncClient) -> None:
    """Test liveness and readiness probes."""
    response = await async_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

    ready = await async_client.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json()["checks"]["database"] == "connected"


@pytest.mark.asyncio
async def test_missing_token_returns_structured_401(async_client: AsyncClient) -> None:
    """Test protected endpoints require a bearer token."""
    response = await async_client.get("/v1/invoices")

    assert response.status_code == 401
    body = response.json()
    assert body["error"] == "Unauthorized"
    assert body["details"][0]["code"] == "authentication_required"
    assert body["request_id"]
    assert body["request_id"] == response.headers["X-Request-ID"]

    traced = await async_client.get("/v1/invoices", headers={"X-Request-ID": "req_trace123"})
    assert traced.json()["request_id"] == "req_trace123"
    assert traced.headers["X-Request-ID"] == "req_trace123"


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(async_client: AsyncClient) -> None:
    """Test a garbage token is refused."""
    response = await async_client.get("/v1/invoices", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_company_header_resolution(
    async_client: AsyncClient,
    auth_headers: Callable[..., dict[str, str]],
    test_company: Company,
    other_company: Company,
) -> None:
    """Test the acting company comes from X-Company-Id when the user has several."""
    both = (test_company.id, other_company.id)

    missing = await async_client.get("/v1/invoices", headers=auth_headers("multi@example.com", both))
    assert missing.status_code == 400
    assert missing.json()["message"] == "X-Company-Id header is required"

    foreign = await async_client.get(
        "/v1/invoices",
        headers=auth_headers("solo@example.com", (test_company.id,), company_id=other_company.id),
    )
    assert foreign.status_code == 403

    ok = await async_client.get("/v1/invoices", headers=auth_headers("multi@example.com", both, test_company.id))
    assert ok.status_code == 200
    assert ok.json() == {"items": [], "total": 0, "page": 1, "limit": 10, "total_pages": 0}


@pytest.mark.asyncio
async def test_b2b_invoice_flow_over_http(
    async_client: AsyncClient,
    auth_headers: Callable[..., dict[str, str]],
    test_company: Company,
    test_client_record: Client,
) -> None:
    """Test create, send, public confirm and mark paid through the API."""
    sender = auth_headers("billing@example.com", (test_company.id,))

    created = await async_client.post(
        "/v1/b2b-invoices",
        headers=sender,
        json={
            "client_id": str(test_client_record.uuid),
            "tax_rate": "10",
            "items": [
                {"description": "Consulting", "quantity": "2", "unit_price": "100"},
                {"description": "Support", "quantity": "1", "unit_price": "50"},
            ],
        },
    )
    assert created.status_code == 201
    invoice = created.json()
    assert invoice["invoice_type"] == "B2B"
    assert invoice["status"] == "DRAFT"
    assert invoice["invoice_number"] == "INV-B2B-0001"
    assert invoice["subtotal"] == "250.00"
    assert invoice["tax_amount"] == "25.00"
    assert invoice["total"] == "275.00"
    invoice_id = invoice["uuid"]

    hidden = await async_client.get(f"/v1/b2b-invoices/{invoice_id}/public")
    assert hidden.status_code == 404

    sent = await async_client.patch(f"/v1/b2b-invoices/{invoice_id}/send", headers=sender)
    assert sent.status_code == 200
    assert sent.json()["status"] == "SENT"

    public = await async_client.get(f"/v1/b2b-invoices/{invoice_id}/public")
    assert public.status_code == 200
    assert public.json()["total"] == "275.00"

    confirmed = await async_client.patch(f"/v1/b2b-invoices/{invoice_id}/confirm")
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "CONFIRMED"
    assert confirmed.json()["bill"]["status"] == "PENDING"

    paid = await async_client.patch(
        f"/v1/b2b-invoices/{invoice_id}/mark-paid",
        headers=sender,
        json={"transaction_hash": "0xabc"},
    )
    assert paid.status_code == 200
    assert paid.json()["status"] == "PAID"
    assert paid.json()["bill"]["status"] == "PAID"
    assert paid.json()["bill"]["transaction_hash"] == "0xabc"

    stats = await async_client.get("/v1/b2b-invoices/stats", headers=sender)
    assert stats.status_code == 200
    assert stats.json()["sent"]["by_status"]["PAID"] == 1


@pytest.mark.asyncio
async def test_invalid_transition_error_body(
    async_client: AsyncClient,
    auth_headers: Callable[..., dict[str, str]],
    test_company: Company,
) -> None:
    """Test domain errors are rendered with code and remediation."""
    sender = auth_headers("billing@example.com", (test_company.id,))
    created = await async_client.post(
        "/v1/b2b-invoices",
        headers=sender,
        json={
            "unregistered_company": {"company_name": "Initech"},
            "items": [{"description": "Audit", "unit_price": "900"}],
        },
    )
    invoice_id = created.json()["uuid"]
    await async_client.patch(f"/v1/b2b-invoices/{invoice_id}/send", headers=sender)

    response = await async_client.patch(f"/v1/b2b-invoices/{invoice_id}/send", headers=sender)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "InvalidState"
    assert body["message"] == "Only draft invoices can be sent"
    assert body["details"][0]["code"] == "invalid_state_transition"
    assert body["remediation"]

    missing = await async_client.post(
        "/v1/b2b-invoices",
        headers=sender,
        json={"items": [{"description": "Audit", "unit_price": "900"}]},
    )
    assert missing.status_code == 400
    assert missing.json()["details"][0]["code"] == "missing_recipient"


@pytest.mark.asyncio
async def test_validation_errors(
    async_client: AsyncClient,
    auth_headers: Callable[..., dict[str, str]],
    test_company: Company,
) -> None:
    """Test request validation failures return 422 with field details."""
    response = await async_client.post(
        "/v1/b2b-invoices",
        headers=auth_headers("billing@example.com", (test_company.id,)),
        json={"unregistered_company": {"company_name": "Initech"}, "items": []},
    )

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "ValidationError"
    assert any(detail["field"].endswith("items") for detail in body["details"])


@pytest.mark.asyncio
async def test_payroll_flow_over_http(
    async_client: AsyncClient,
    auth_headers: Callable[..., dict[str, str]],
    test_company: Company,
    test_employee: Employee,
    test_payroll: Payroll,
) -> None:
    """Test generate, employee review and confirm, then pay the bill."""
    employer = auth_headers("hr@example.com", (test_company.id,))
    employee = auth_headers(test_employee.email)

    generated = await async_client.post(f"/v1/invoices/generate/{test_payroll.id}", headers=employer)
    assert generated.status_code == 201
    invoice = generated.json()
    assert invoice["invoice_type"] == "EMPLOYEE"
    assert invoice["status"] == "SENT"
    assert invoice["total"] == "1000.00"
    invoice_id = invoice["uuid"]

    duplicate = await async_client.post(f"/v1/invoices/generate/{test_payroll.id}", headers=employer)
    assert duplicate.status_code == 409
    assert duplicate.json()["details"][0]["code"] == "invoice_already_generated"

    mine = await async_client.get("/v1/invoices/employee", headers=employee)
    assert mine.status_code == 200
    assert [item["uuid"] for item in mine.json()["items"]] == [invoice_id]

    forbidden = await async_client.patch(f"/v1/invoices/{invoice_id}/send", headers=employee)
    assert forbidden.status_code == 403
    assert forbidden.json()["error"] == "Forbidden"

    reviewed = await async_client.patch(f"/v1/invoices/{invoice_id}/review", headers=employee)
    assert reviewed.json()["status"] == "REVIEWED"
    confirmed = await async_client.patch(f"/v1/invoices/{invoice_id}/confirm", headers=employee)
    assert confirmed.json()["status"] == "CONFIRMED"

    bills = await async_client.get("/v1/bills", headers=employer)
    assert bills.status_code == 200
    assert len(bills.json()) == 1
    bill_id = bills.json()[0]["uuid"]

    paid = await async_client.post("/v1/bills/pay", headers=employer, json={"bill_ids": [bill_id]})
    assert paid.status_code == 200
    assert paid.json()[0]["status"] == "PAID"

    settled = await async_client.get(f"/v1/invoices/{invoice_id}", headers=employer)
    assert settled.json()["status"] == "PAID"

    by_number = await async_client.get(f"/v1/invoices/number/{invoice['invoice_number']}", headers=employer)
    assert by_number.json()["uuid"] == invoice_id


@pytest.mark.asyncio
async def test_items_and_schedules_over_http(
    async_client: AsyncClient,
    auth_headers: Callable[..., dict[str, str]],
    test_company: Company,
    test_payroll: Payroll,
    test_client_record: Client,
) -> None:
    """Test item editing and schedule endpoints."""
    employer = auth_headers("hr@example.com", (test_company.id,))

    created = await async_client.post(
        "/v1/invoices",
        headers=employer,
        json={"payroll_id": test_payroll.id, "items": [{"description": "Salary", "unit_price": "1000"}]},
    )
    assert created.status_code == 201
    invoice_id = created.json()["uuid"]

    added = await async_client.post(
        f"/v1/invoices/{invoice_id}/items",
        headers=employer,
        json={"description": "Bonus", "quantity": "1", "unit_price": "250"},
    )
    assert added.status_code == 201
    assert added.json()["order"] == 1

    items = await async_client.get(f"/v1/invoices/{invoice_id}/items", headers=employer)
    assert [item["description"] for item in items.json()] == ["Salary", "Bonus"]

    invoice = await async_client.get(f"/v1/invoices/{invoice_id}", headers=employer)
    assert invoice.json()["total"] == "1250.00"

    schedule = await async_client.post(
        f"/v1/payrolls/{test_payroll.id}/invoice-schedule",
        headers=employer,
        json={"frequency": "MONTHLY", "day_of_month": 1, "generate_days_before": 3},
    )
    assert schedule.status_code == 201
    schedule_id = schedule.json()["uuid"]

    duplicate = await async_client.post(
        f"/v1/payrolls/{test_payroll.id}/invoice-schedule", headers=employer, json={}
    )
    assert duplicate.status_code == 400
    assert duplicate.json()["details"][0]["code"] == "schedule_already_exists"

    toggled = await async_client.patch(f"/v1/invoice-schedules/{schedule_id}/toggle", headers=employer)
    assert toggled.json()["is_active"] is False

    b2b_schedule = await async_client.post(
        "/v1/b2b-invoices/schedules",
        headers=employer,
        json={
            "client_id": str(test_client_record.uuid),
            "frequency": "WEEKLY",
            "day_of_week": 1,
            "invoice_template": {"items": [{"description": "Weekly support", "unit_price": "300"}]},
        },
    )
    assert b2b_schedule.status_code == 201

    listed = await async_client.get("/v1/b2b-invoices/schedules", headers=employer)
    assert listed.status_code == 200
    assert [s["uuid"] for s in listed.json()] == [b2b_schedule.json()["uuid"]]

    deleted = await async_client.delete(f"/v1/invoice-schedules/{schedule_id}", headers=employer)
    assert deleted.status_code == 204
