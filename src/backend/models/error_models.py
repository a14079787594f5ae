"""
Error envelope and error codes for the Delila API.

REST errors render as ``{"error": ErrorResponse}``. Stream errors use the
ErrorEvent schema instead; both draw their codes from ErrorCode.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Stable error identifiers. The prefix names the failing area."""

    # Request validation
    VALIDATION_ERROR = "VAL_2001"

    # Stored resources
    RESOURCE_NOT_FOUND = "RES_3001"
    RESOURCE_CONFLICT = "RES_3003"

    # Chat sessions
    SESSION_NOT_FOUND = "SES_4001"

    # Character file generation
    GENERATION_PARSING_FAILED = "GEN_5001"
    GENERATION_REPAIR_FAILED = "GEN_5002"

    # Model providers and other upstreams
    EXTERNAL_SERVICE_ERROR = "EXT_7001"
    EXTERNAL_TIMEOUT = "EXT_7002"
    EXTERNAL_RATE_LIMITED = "EXT_7003"
    LLM_PROVIDER_ERROR = "EXT_7010"
    EMBEDDING_PROVIDER_ERROR = "EXT_7011"

    # PostgreSQL
    DATABASE_ERROR = "DB_8001"
    DATABASE_CONNECTION_FAILED = "DB_8002"

    # Server
    INTERNAL_ERROR = "INT_9001"
    INTERNAL_CONFIGURATION_ERROR = "INT_9002"
    INTERNAL_UNEXPECTED = "INT_9999"


class ErrorDetail(BaseModel):
    """One field-level problem, e.g. a validation error or a character file rule."""

    field: str | None = None
    message: str
    code: str | None = None
    # Never serialized; offending values may hold user content
    value: Any | None = Field(default=None, exclude=True)


class ErrorResponse(BaseModel):
    """Body of every REST error.

    Example:
        {
            "error": {
                "code": "SES_4001",
                "message": "Session 'sess_123' not found",
                "request_id": "req_a1b2c3d4e5f6a7b8",
                "timestamp": "2025-01-15T10:30:00+00:00",
                "path": "/api/v1/sessions/sess_123"
            }
        }
    """

    code: ErrorCode
    message: str
    request_id: str | None = None
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    details: list[ErrorDetail] | None = None
    path: str | None = None
    debug: dict[str, Any] | None = Field(default=None, exclude=True)

    def to_dict(self, include_debug: bool = False) -> dict[str, Any]:
        """Render the envelope, omitting unset fields and, unless asked, debug data."""
        data = self.model_dump(mode="json", exclude_none=True)
        if include_debug and self.debug:
            data["debug"] = self.debug
        return {"error": data}


class ErrorResponseWrapper(BaseModel):
    """OpenAPI shape of an error response."""

    error: ErrorResponse


_STATUS_GROUPS: dict[int, tuple[ErrorCode, ...]] = {
    404: (ErrorCode.RESOURCE_NOT_FOUND, ErrorCode.SESSION_NOT_FOUND),
    409: (ErrorCode.RESOURCE_CONFLICT,),
    422: (
        ErrorCode.VALIDATION_ERROR,
        ErrorCode.GENERATION_PARSING_FAILED,
        ErrorCode.GENERATION_REPAIR_FAILED,
    ),
    429: (ErrorCode.EXTERNAL_RATE_LIMITED,),
    500: (
        ErrorCode.DATABASE_ERROR,
        ErrorCode.DATABASE_CONNECTION_FAILED,
        ErrorCode.INTERNAL_ERROR,
        ErrorCode.INTERNAL_CONFIGURATION_ERROR,
        ErrorCode.INTERNAL_UNEXPECTED,
    ),
    502: (
        ErrorCode.EXTERNAL_SERVICE_ERROR,
        ErrorCode.LLM_PROVIDER_ERROR,
        ErrorCode.EMBEDDING_PROVIDER_ERROR,
    ),
    503: (ErrorCode.EXTERNAL_TIMEOUT,),
}

ERROR_CODE_TO_STATUS: dict[ErrorCode, int] = {
    code: status for status, codes in _STATUS_GROUPS.items() for code in codes
}


def get_status_code(error_code: ErrorCode) -> int:
    return ERROR_CODE_TO_STATUS.get(error_code, 500)


__all__ = [
    "ERROR_CODE_TO_STATUS",
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "ErrorResponseWrapper",
    "get_status_code",
]
