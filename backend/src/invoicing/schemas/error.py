"""Structured error response schemas."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from invoicing.utils.clock import utcnow


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(default=None, description="Field that caused the error (for validation errors)")
    value: Any | None = Field(default=None, description="Invalid value (for validation errors)")


class ErrorResponse(BaseModel):
    """Standard error response structure.

    Every error returned by the API has the same envelope:
    - Error type and primary message
    - Machine-readable error codes in ``details``
    - Remediation hint where one exists
    - Request ID and timestamp for tracing
    """

    error: str = Field(..., description="Error type (e.g., 'ValidationError', 'NotFound', 'InvalidState')")
    message: str = Field(..., description="Primary error message")
    details: list[ErrorDetail] | None = Field(default=None, description="Detailed error information")
    remediation: str | None = Field(default=None, description="Suggestion for fixing the error")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=utcnow, description="Error timestamp")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "InvalidState",
                "message": "Only draft invoices can be sent",
                "details": [
                    {
                        "code": "invalid_state_transition",
                        "message": "Only draft invoices can be sent",
                    }
                ],
                "remediation": "Check the invoice status before requesting this transition",
                "request_id": "req_1234567890",
                "timestamp": "2024-01-15T10:30:00Z",
            }
        }
    )


class ErrorCode:
    """Standard error codes used across the API."""

    # Validation errors (400)
    BAD_REQUEST = "bad_request"
    INVALID_AMOUNT = "invalid_amount"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    MISSING_RECIPIENT = "missing_recipient"

    # Business logic errors (400 / 409)
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    DUPLICATE_RESOURCE = "duplicate_resource"
    INVOICE_ALREADY_GENERATED = "invoice_already_generated"
    SCHEDULE_ALREADY_EXISTS = "schedule_already_exists"
    BILL_ALREADY_EXISTS = "bill_already_exists"
    BILL_ALREADY_PAID = "bill_already_paid"

    # Not found errors (404)
    RESOURCE_NOT_FOUND = "resource_not_found"
    INVOICE_NOT_FOUND = "invoice_not_found"
    INVOICE_ITEM_NOT_FOUND = "invoice_item_not_found"
    SCHEDULE_NOT_FOUND = "schedule_not_found"
    PAYROLL_NOT_FOUND = "payroll_not_found"
    CLIENT_NOT_FOUND = "client_not_found"
    COMPANY_NOT_FOUND = "company_not_found"
    BILL_NOT_FOUND = "bill_not_found"

    # Authorization errors (401 / 403)
    AUTHENTICATION_REQUIRED = "authentication_required"
    INSUFFICIENT_PERMISSIONS = "insufficient_permissions"

    # External service errors (503)
    DATABASE_ERROR = "database_error"

    # Internal errors (500)
    INTERNAL_ERROR = "internal_error"


# Remediation hints for common errors
REMEDIATION_HINTS = {
    ErrorCode.INVALID_AMOUNT: "Monetary values accept at most 8 fractional digits",
    ErrorCode.MISSING_RECIPIENT: "Provide either client_id or unregistered_company details",
    ErrorCode.INVALID_STATE_TRANSITION: "Check the invoice status before requesting this transition",
    ErrorCode.INVOICE_ALREADY_GENERATED: "Only one invoice per payroll can be generated each calendar month",
    ErrorCode.SCHEDULE_ALREADY_EXISTS: "Update or toggle the existing schedule instead of creating a new one",
    ErrorCode.BILL_ALREADY_PAID: "Paid bills are final and cannot be removed",
    ErrorCode.INVOICE_NOT_FOUND: "Verify the invoice identifier and that it belongs to your company",
    ErrorCode.DATABASE_ERROR: "Database temporarily unavailable. Please try again in a few moments.",
}
