"""
Exception handlers for the Delila REST surface.

Every handled error leaves as ``{"error": {...}}`` built from ErrorResponse,
with the request id and path attached. Failures inside an SSE stream happen
after the headers are sent and never reach these handlers; ChatService
reports those as error events on the stream instead.
"""

from __future__ import annotations

import traceback

from typing import Any

import asyncpg

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from api.middleware.request_context import get_request_id
from core.constants import get_settings
from core.exceptions import AppException, GeneralError, ParsingError, ProviderError
from models.error_models import ErrorCode, ErrorDetail, ErrorResponse, get_status_code
from utils.logger import logger

# Raw model output echoed in debug responses is cut to this many characters
DEBUG_OUTPUT_PREVIEW = 500

HTTP_STATUS_TO_CODE: dict[int, ErrorCode] = {
    400: ErrorCode.VALIDATION_ERROR,
    404: ErrorCode.RESOURCE_NOT_FOUND,
    409: ErrorCode.RESOURCE_CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.EXTERNAL_RATE_LIMITED,
    502: ErrorCode.EXTERNAL_SERVICE_ERROR,
    503: ErrorCode.EXTERNAL_TIMEOUT,
}


def _error_json(
    request: Request,
    exc: Exception,
    status_code: int,
    code: ErrorCode,
    message: str,
    details: list[ErrorDetail] | None = None,
    debug: dict[str, Any] | None = None,
) -> JSONResponse:
    """Log the failure and render the error envelope.

    Debug fields only leave the process when settings.debug is on.
    """
    if status_code >= 500:
        logger.error(
            f"{code.value} on {request.url.path}: {exc}",
            exc_info=True,
            error_code=code.value,
            status_code=status_code,
        )
    else:
        logger.warning(
            f"{code.value} on {request.url.path}: {exc}",
            error_code=code.value,
            status_code=status_code,
        )

    include_debug = bool(get_settings().debug)
    body = ErrorResponse(
        code=code,
        message=message,
        request_id=get_request_id(),
        path=request.url.path,
        details=details or None,
        debug=debug if include_debug else None,
    )
    return JSONResponse(status_code=status_code, content=body.to_dict(include_debug=include_debug))


def _app_error_details(exc: AppException) -> list[ErrorDetail]:
    if isinstance(exc, ParsingError):
        return [ErrorDetail(field="character_file", message=error) for error in exc.errors]
    if not exc.details:
        return []
    return [ErrorDetail(field=key, message=str(value)) for key, value in exc.details.items() if value is not None]


def _app_error_debug(exc: AppException) -> dict[str, Any]:
    debug: dict[str, Any] = {
        "exception_type": type(exc).__name__,
        "cause": repr(exc.cause) if exc.cause else None,
    }
    if isinstance(exc, ProviderError):
        debug["provider"] = exc.provider
    if isinstance(exc, ParsingError) and exc.raw_output:
        debug["raw_output"] = exc.raw_output[:DEBUG_OUTPUT_PREVIEW]
    return debug


def _validation_details(errors: Any) -> list[ErrorDetail]:
    return [
        ErrorDetail(
            field=".".join(str(loc) for loc in error["loc"]),
            message=error["msg"],
            code=error["type"],
        )
        for error in errors
    ]


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Session lookups, provider failures, parsing failures and configuration errors."""
    return _error_json(
        request,
        exc,
        get_status_code(exc.code),
        exc.code,
        exc.message,
        details=_app_error_details(exc),
        debug=_app_error_debug(exc),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = HTTP_STATUS_TO_CODE.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error_json(request, exc, exc.status_code, code, message, debug={"original_status": exc.status_code})


async def validation_exception_handler(
    request: Request, exc: RequestValidationError | ValidationError
) -> JSONResponse:
    """Malformed request bodies and models that fail validation inside a handler."""
    message = "Request validation failed" if isinstance(exc, RequestValidationError) else "Data validation failed"
    return _error_json(
        request,
        exc,
        422,
        ErrorCode.VALIDATION_ERROR,
        message,
        details=_validation_details(exc.errors()),
    )


async def asyncpg_exception_handler(request: Request, exc: asyncpg.PostgresError) -> JSONResponse:
    return _error_json(
        request,
        exc,
        500,
        ErrorCode.DATABASE_ERROR,
        "Database operation failed",
        debug={"sqlstate": getattr(exc, "sqlstate", None), "pg_error_class": type(exc).__name__},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unexpected before the first byte of the response."""
    error = GeneralError(cause=exc)
    return _error_json(
        request,
        exc,
        500,
        error.code,
        error.message,
        debug={
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
            "traceback": traceback.format_exc(),
        },
    )


_HANDLERS: tuple[tuple[type[Exception], Any], ...] = (
    (AppException, app_exception_handler),
    (HTTPException, http_exception_handler),
    (RequestValidationError, validation_exception_handler),
    (ValidationError, validation_exception_handler),
    (asyncpg.PostgresError, asyncpg_exception_handler),
    (Exception, generic_exception_handler),
)


def register_exception_handlers(app: FastAPI) -> None:
    """Install every handler on ``app``; call once right after creating it."""
    for exc_type, handler in _HANDLERS:
        app.add_exception_handler(exc_type, handler)


__all__ = [
    "HTTP_STATUS_TO_CODE",
    "app_exception_handler",
    "asyncpg_exception_handler",
    "generic_exception_handler",
    "http_exception_handler",
    "register_exception_handlers",
    "validation_exception_handler",
]
