"""
Application exception hierarchy.

Every error surfaced to a caller carries an ErrorCode. REST handlers map the
code to an HTTP status; the chat stream maps stage failures to an errorType.
"""

from __future__ import annotations

from typing import Any

from core.constants import GENERAL_ERROR_MESSAGE
from models.error_models import ErrorCode


class AppException(Exception):
    """Base application exception with error code support.

    Example:
        raise AppException(
            code=ErrorCode.SESSION_NOT_FOUND,
            message="Session not found",
            details={"session_id": session_id}
        )
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details
        self.cause = cause
        super().__init__(message)


class ConfigurationError(AppException):
    """Missing credentials or an unknown provider. Fatal at construction."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(code=ErrorCode.INTERNAL_CONFIGURATION_ERROR, message=message, details=details)


class NotFoundError(AppException):
    """Resource not found errors."""

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        code: ErrorCode = ErrorCode.RESOURCE_NOT_FOUND,
    ):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} '{resource_id}' not found"
        super().__init__(code=code, message=message, details={"resource": resource, "id": resource_id})


class SessionNotFoundError(NotFoundError):
    """Session not found error."""

    def __init__(self, session_id: str):
        super().__init__(resource="Session", resource_id=session_id, code=ErrorCode.SESSION_NOT_FOUND)
        self.session_id = session_id


class ParsingError(AppException):
    """Structured model output failed validation, including after repair."""

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        raw_output: str | None = None,
        code: ErrorCode = ErrorCode.GENERATION_PARSING_FAILED,
        cause: Exception | None = None,
    ):
        super().__init__(
            code=code,
            message=message,
            details={"errors": errors} if errors else None,
            cause=cause,
        )
        self.errors = errors or []
        self.raw_output = raw_output


class ProviderError(AppException):
    """A generation or embedding call failed or timed out."""

    def __init__(
        self,
        provider: str,
        message: str,
        code: ErrorCode = ErrorCode.LLM_PROVIDER_ERROR,
        cause: Exception | None = None,
    ):
        super().__init__(
            code=code,
            message=f"{provider}: {message}",
            details={"provider": provider},
            cause=cause,
        )
        self.provider = provider


class GeneralError(AppException):
    """Uncaught failure while handling a request.

    Rendered as a terminal ``generalError`` event once a stream has started,
    otherwise as a 500 response. The message never echoes the cause.
    """

    def __init__(self, cause: Exception | None = None, message: str = GENERAL_ERROR_MESSAGE):
        super().__init__(
            code=ErrorCode.INTERNAL_UNEXPECTED,
            message=message,
            details={"exception_type": type(cause).__name__} if cause else None,
            cause=cause,
        )


__all__ = [
    "AppException",
    "ConfigurationError",
    "GeneralError",
    "NotFoundError",
    "ParsingError",
    "ProviderError",
    "SessionNotFoundError",
]
