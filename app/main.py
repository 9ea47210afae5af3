"""
HTTP API for the Budget Tracker

JSON over HTTP, every route behind an authenticated identity. The identity
comes from an upstream auth proxy that forwards the user id (and optional
profile fields) in request headers; this service never handles credentials.

Error contract (one handler per error kind, no per-route try/except):
- 400 {"message": "Invalid data", "errors": [...]}  schema or business rules
- 401 {"message": "Unauthorized"}                   no identity / session expired
- 404 {"message": "Transaction not found"}          missing or not owned
- 500 {"message": "Internal server error"}          storage or unexpected failure, logged here
"""

from datetime import date
from typing import Optional
from uuid import UUID

import structlog
import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from budget_tracker.audit import AuditLogger, configure_logging, create_correlation_id
from budget_tracker.config import get_settings
from budget_tracker.models.transaction import (
    MonthlySummary,
    Transaction,
    TransactionCreate,
    TransactionUpdate,
    User,
    UserProfile,
)
from budget_tracker.orchestrator import (
    TransactionNotFoundError,
    TransactionService,
    UserService,
    create_app_components,
)
from budget_tracker.queries import InvalidPeriodError
from budget_tracker.services.storage import StorageError
from budget_tracker.validation import TransactionValidationError


logger = structlog.get_logger(__name__)


class SessionExpiredError(Exception):
    """The request carries no authenticated identity."""
    pass


# -----------------------------
# Dependencies
# -----------------------------

def get_correlation_id(request: Request) -> UUID:
    """Reuse a well-formed X-Request-Id, otherwise mint a new id."""
    cached = getattr(request.state, "correlation_id", None)
    if cached is not None:
        return cached
    raw = request.headers.get("X-Request-Id")
    try:
        correlation_id = UUID(raw) if raw else create_correlation_id()
    except ValueError:
        correlation_id = create_correlation_id()
    request.state.correlation_id = correlation_id
    return correlation_id


def get_transaction_service(request: Request) -> TransactionService:
    return request.app.state.transaction_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


async def get_identity(
    request: Request,
    correlation_id: UUID = Depends(get_correlation_id),
) -> UserProfile:
    """
    Resolve the authenticated identity forwarded by the auth proxy.

    Raises:
        SessionExpiredError: If no user id header is present
    """
    settings = get_settings().app
    headers = request.headers

    user_id = (headers.get(settings.identity_header) or "").strip()
    if not user_id:
        audit_logger: AuditLogger = request.app.state.audit_logger
        await audit_logger.log_session_rejected(
            reason=f"missing {settings.identity_header} header",
            correlation_id=correlation_id,
        )
        raise SessionExpiredError()

    return UserProfile(
        id=user_id,
        email=headers.get(settings.identity_email_header),
        first_name=headers.get(settings.identity_first_name_header),
        last_name=headers.get(settings.identity_last_name_header),
        profile_image_url=headers.get(settings.identity_image_header),
    )


# -----------------------------
# Routes
# -----------------------------

router = APIRouter()


@router.get("/auth/user", response_model=User)
async def read_current_user(
    identity: UserProfile = Depends(get_identity),
    users: UserService = Depends(get_user_service),
    correlation_id: UUID = Depends(get_correlation_id),
):
    return await users.sync_profile(identity, correlation_id)


@router.get("/transactions", response_model=list[Transaction])
async def list_transactions(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    identity: UserProfile = Depends(get_identity),
    service: TransactionService = Depends(get_transaction_service),
    correlation_id: UUID = Depends(get_correlation_id),
):
    if start_date is None or end_date is None:
        raise StarletteHTTPException(
            status_code=400,
            detail="Start date and end date are required",
        )
    return await service.list_by_date_range(identity.id, start_date, end_date, correlation_id)


@router.get("/transactions/month/{year}/{month}", response_model=list[Transaction])
async def list_month_transactions(
    year: int,
    month: int,
    identity: UserProfile = Depends(get_identity),
    service: TransactionService = Depends(get_transaction_service),
    correlation_id: UUID = Depends(get_correlation_id),
):
    return await service.list_by_month(identity.id, year, month, correlation_id)


@router.get("/summary/{year}/{month}", response_model=MonthlySummary)
async def read_monthly_summary(
    year: int,
    month: int,
    identity: UserProfile = Depends(get_identity),
    service: TransactionService = Depends(get_transaction_service),
    correlation_id: UUID = Depends(get_correlation_id),
):
    return await service.monthly_summary(identity.id, year, month, correlation_id)


@router.post("/transactions", response_model=Transaction, status_code=201)
async def create_transaction(
    payload: TransactionCreate,
    identity: UserProfile = Depends(get_identity),
    service: TransactionService = Depends(get_transaction_service),
    correlation_id: UUID = Depends(get_correlation_id),
):
    return await service.create(identity.id, payload, correlation_id)


@router.put("/transactions/{transaction_id}", response_model=Transaction)
async def update_transaction(
    transaction_id: str,
    payload: TransactionUpdate,
    identity: UserProfile = Depends(get_identity),
    service: TransactionService = Depends(get_transaction_service),
    correlation_id: UUID = Depends(get_correlation_id),
):
    return await service.update(identity.id, transaction_id, payload, correlation_id)


@router.delete("/transactions/{transaction_id}", status_code=204)
async def delete_transaction(
    transaction_id: str,
    identity: UserProfile = Depends(get_identity),
    service: TransactionService = Depends(get_transaction_service),
    correlation_id: UUID = Depends(get_correlation_id),
):
    await service.delete(identity.id, transaction_id, correlation_id)
    return Response(status_code=204)


# -----------------------------
# Error handlers
# -----------------------------

def _invalid(errors: list[dict]) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid data", "errors": errors},
    )


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    for error in exc.errors():
        # Drop the "body"/"query"/"path" prefix
        location = [str(part) for part in error.get("loc", ())][1:]
        errors.append({
            "field": ".".join(location) or "body",
            "message": error.get("msg", "Invalid value"),
            "type": error.get("type", "invalid"),
        })
    return _invalid(errors)


async def handle_transaction_validation(request: Request, exc: TransactionValidationError) -> JSONResponse:
    return _invalid([issue.model_dump() for issue in exc.issues])


async def handle_invalid_period(request: Request, exc: InvalidPeriodError) -> JSONResponse:
    return _invalid([{"field": exc.field, "message": exc.message, "type": "invalid_period"}])


async def handle_not_found(request: Request, exc: TransactionNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"message": "Transaction not found"})


async def handle_session_expired(request: Request, exc: SessionExpiredError) -> JSONResponse:
    return JSONResponse(status_code=401, content={"message": "Unauthorized"})


async def handle_internal_error(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure in full and answer with an opaque 500."""
    correlation_id = get_correlation_id(request)
    logger.error(
        "request_failed",
        method=request.method,
        path=request.url.path,
        correlation_id=str(correlation_id),
        error=str(exc),
        exc_info=exc,
    )
    audit_logger: AuditLogger = request.app.state.audit_logger
    await audit_logger.log_error(
        error_type=type(exc).__name__,
        error_message=str(exc),
        details={"method": request.method, "path": request.url.path},
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# -----------------------------
# App factory
# -----------------------------

def create_app(
    transaction_service: Optional[TransactionService] = None,
    user_service: Optional[UserService] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Components not passed in are built from settings by
    ``create_app_components``.
    """
    settings = get_settings().app
    configure_logging(settings.log_level)

    if transaction_service is None or user_service is None or audit_logger is None:
        default_tx, default_users, default_audit = create_app_components()
        if transaction_service is None:
            transaction_service = default_tx
        if user_service is None:
            user_service = default_users
        if audit_logger is None:
            audit_logger = default_audit

    app = FastAPI(title="Budget Tracker API", debug=settings.debug_mode)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.transaction_service = transaction_service
    app.state.user_service = user_service
    app.state.audit_logger = audit_logger

    app.include_router(router, prefix=settings.api_prefix)

    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(TransactionValidationError, handle_transaction_validation)
    app.add_exception_handler(InvalidPeriodError, handle_invalid_period)
    app.add_exception_handler(TransactionNotFoundError, handle_not_found)
    app.add_exception_handler(SessionExpiredError, handle_session_expired)
    app.add_exception_handler(StorageError, handle_internal_error)
    app.add_exception_handler(Exception, handle_internal_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)

    return app


if __name__ == "__main__":
    app_settings = get_settings().app
    uvicorn.run(create_app(), host=app_settings.host, port=app_settings.port)
