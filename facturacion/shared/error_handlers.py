"""
Maps invoicing core errors to HTTP responses with an ErrorResponse body
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..services.errors import (
    AlreadySettled,
    ConcurrencyConflict,
    CurrencyMismatch,
    InsufficientStock,
    InvalidAmount,
    LedgerError,
    NotFound,
    PermissionDenied,
    QueryUnavailable,
    QuoteAlreadyConverted,
    TextGenerationUnavailable,
    ValidationError,
)
from .models import ErrorResponse

logger = logging.getLogger(__name__)

STATUS_CODES = {
    ValidationError: 422,
    InvalidAmount: 422,
    NotFound: 404,
    PermissionDenied: 403,
    CurrencyMismatch: 409,
    AlreadySettled: 409,
    QuoteAlreadyConverted: 409,
    InsufficientStock: 409,
    ConcurrencyConflict: 409,
    QueryUnavailable: 503,
    TextGenerationUnavailable: 503,
}


def status_for(exc: LedgerError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in STATUS_CODES:
            return STATUS_CODES[error_type]
    return 500


def error_response(exc: LedgerError) -> ErrorResponse:
    violations = None
    if isinstance(exc, ValidationError):
        violations = [v.to_dict() for v in exc.violations]
    return ErrorResponse(
        error=type(exc).__name__,
        detail=exc.message,
        code=exc.code,
        context=exc.context,
        violations=violations,
    )


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc.message}", extra={"code": exc.code})
    return JSONResponse(status_code=status_code, content=error_response(exc).model_dump(exclude_none=True))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LedgerError, ledger_error_handler)
