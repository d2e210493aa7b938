"""Domain exceptions raised by the invoicing services.

Each exception carries a machine-readable ``code`` from
:class:`invoicing.schemas.error.ErrorCode`; the FastAPI exception handlers in
``invoicing.main`` translate them into structured error responses.
"""
from typing import Any

from invoicing.schemas.error import ErrorCode


class InvoicingError(Exception):
    """Base class for invoicing domain errors."""

    status_code = 400
    error = "BadRequest"
    default_code = ErrorCode.BAD_REQUEST

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}


class NotFoundError(InvoicingError):
    """Resource is absent or outside the caller's ownership scope."""

    status_code = 404
    error = "NotFound"
    default_code = ErrorCode.RESOURCE_NOT_FOUND


class ForbiddenError(InvoicingError):
    """Caller can see the resource but may not perform the action."""

    status_code = 403
    error = "Forbidden"
    default_code = ErrorCode.INSUFFICIENT_PERMISSIONS


class ConflictError(InvoicingError):
    """Duplicate resource, e.g. a second invoice for the same payroll month."""

    status_code = 409
    error = "Conflict"
    default_code = ErrorCode.DUPLICATE_RESOURCE


class BadRequestError(InvoicingError):
    """Invalid or incomplete input."""


class InvalidStateError(BadRequestError):
    """Transition attempted from a status that does not allow it."""

    error = "InvalidState"
    default_code = ErrorCode.INVALID_STATE_TRANSITION
