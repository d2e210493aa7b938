"""FastAPI application entry point."""
import traceback
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from invoicing.api.v1 import b2b_invoices, bills, health, invoice_items, invoices, schedules
from invoicing.config import settings
from invoicing.database import dispose_engine
from invoicing.exceptions import InvoicingError
from invoicing.middleware.logging import LoggingMiddleware, setup_logging
from invoicing.middleware.metrics import MetricsMiddleware
from invoicing.schemas.error import REMEDIATION_HINTS, ErrorCode, ErrorDetail
from invoicing.utils.clock import utcnow

# Setup structured logging
setup_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    logger.info("application_starting", env=settings.app_env, service=settings.service_name)
    yield
    logger.info("application_shutting_down")
    await dispose_engine()


app = FastAPI(
    title="Invoicing Engine",
    description="Payroll and B2B invoice lifecycle, recurring schedules and bills",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)

# Mount Prometheus metrics endpoint
app.mount("/metrics", make_asgi_app())


def _request_id(request: Request) -> str:
    """Id bound by LoggingMiddleware, so error bodies match the request's log entries."""
    request_id = getattr(request.state, "request_id", None)
    return request_id or request.headers.get("x-request-id") or f"req_{uuid.uuid4().hex[:12]}"


def _error_body(
    request_id: str,
    error: str,
    message: str,
    details: list[dict[str, Any]] | None = None,
    remediation: str | None = None,
) -> dict[str, Any]:
    return {
        "error": error,
        "message": message,
        "details": details,
        "remediation": remediation,
        "request_id": request_id,
        "timestamp": utcnow().isoformat() + "Z",
    }


@app.exception_handler(InvoicingError)
async def invoicing_exception_handler(request: Request, exc: InvoicingError) -> JSONResponse:
    """
    Handle domain errors raised by the services.

    The status code comes from the exception class (404, 403, 409, 400).
    """
    request_id = _request_id(request)
    logger.warning(
        "invoicing_error",
        path=request.url.path,
        method=request.method,
        request_id=request_id,
        error=exc.error,
        code=exc.code,
        message=exc.message,
    )

    detail = {"code": exc.code, "message": exc.message}
    if exc.details:
        detail["value"] = exc.details

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(
            request_id,
            exc.error,
            exc.message,
            details=[ErrorDetail(**detail).model_dump()],
            remediation=REMEDIATION_HINTS.get(exc.code),
        ),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework HTTP errors (authentication, unknown routes) in the error envelope."""
    code = {
        status.HTTP_401_UNAUTHORIZED: ErrorCode.AUTHENTICATION_REQUIRED,
        status.HTTP_403_FORBIDDEN: ErrorCode.INSUFFICIENT_PERMISSIONS,
        status.HTTP_404_NOT_FOUND: ErrorCode.RESOURCE_NOT_FOUND,
    }.get(exc.status_code, ErrorCode.BAD_REQUEST)

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(
            _request_id(request),
            "Unauthorized" if exc.status_code == status.HTTP_401_UNAUTHORIZED else "HTTPError",
            str(exc.detail),
            details=[{"code": code, "message": str(exc.detail)}],
        ),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle Pydantic validation errors with structured response.

    Returns 422 with field-level validation errors.
    """
    request_id = _request_id(request)

    details = []
    for error in exc.errors():
        field_path = ".".join(str(loc) for loc in error["loc"])
        code = ErrorCode.MISSING_REQUIRED_FIELD if error["type"] == "missing" else "validation_error"
        value = error.get("input")
        details.append(
            ErrorDetail(
                code=code,
                message=error["msg"],
                field=field_path,
                value=value if isinstance(value, (str, int, float, bool, type(None))) else str(value),
            ).model_dump()
        )

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        request_id=request_id,
        error_count=len(details),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(
            request_id,
            "ValidationError",
            "Request validation failed",
            details=details,
            remediation="Check the API documentation for correct request format at /docs",
        ),
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """
    Handle database errors.

    Returns 503 Service Unavailable; internal details are hidden in production.
    """
    request_id = _request_id(request)
    logger.error(
        "database_error",
        path=request.url.path,
        method=request.method,
        request_id=request_id,
        error_type=type(exc).__name__,
        error_message=str(exc),
    )

    error_message = "Database temporarily unavailable" if settings.app_env == "production" else str(exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_error_body(
            request_id,
            "DatabaseError",
            "A database error occurred",
            details=[{"code": ErrorCode.DATABASE_ERROR, "message": error_message}],
            remediation=REMEDIATION_HINTS.get(ErrorCode.DATABASE_ERROR),
        ),
        headers={"Retry-After": "30"},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all other uncaught exceptions.

    Logs the full stack trace and returns a safe message to the client.
    """
    request_id = _request_id(request)
    logger.exception(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        request_id=request_id,
        exception_type=type(exc).__name__,
        stack_trace=traceback.format_exc(),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(
            request_id,
            "InternalServerError",
            "An unexpected error occurred",
            details=[
                {
                    "code": ErrorCode.INTERNAL_ERROR,
                    "message": str(exc) if settings.debug else "Internal server error",
                }
            ],
            remediation="Please contact support with the request ID",
        ),
    )


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "service": settings.service_name,
        "version": "0.1.0",
        "status": "operational",
        "docs": "/docs",
    }


app.include_router(health.router, tags=["Health"])
app.include_router(invoices.router, prefix="/v1")
app.include_router(invoice_items.router, prefix="/v1")
# Schedule routes first so /b2b-invoices/schedules is not captured by /b2b-invoices/{invoice_id}
app.include_router(schedules.b2b_router, prefix="/v1")
app.include_router(b2b_invoices.router, prefix="/v1")
app.include_router(schedules.router, prefix="/v1")
app.include_router(bills.router, prefix="/v1")
