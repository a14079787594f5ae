"""Tests for the application exception taxonomy."""

from __future__ import annotations

from core.constants import GENERAL_ERROR_MESSAGE
from core.exceptions import (
    ConfigurationError,
    GeneralError,
    NotFoundError,
    ParsingError,
    ProviderError,
    SessionNotFoundError,
)
from models.error_models import ErrorCode, get_status_code


def test_session_not_found_is_a_404() -> None:
    error = SessionNotFoundError("sess_missing")

    assert isinstance(error, NotFoundError)
    assert error.code == ErrorCode.SESSION_NOT_FOUND
    assert error.message == "Session 'sess_missing' not found"
    assert get_status_code(error.code) == 404


def test_provider_error_prefixes_provider() -> None:
    cause = TimeoutError()

    error = ProviderError("anthropic", "stream read timed out", cause=cause)

    assert error.message == "anthropic: stream read timed out"
    assert error.details == {"provider": "anthropic"}
    assert error.cause is cause


def test_parsing_error_keeps_validation_errors() -> None:
    error = ParsingError("Character file invalid after repair", errors=["bio: needs at least 10 entries"])

    assert error.errors == ["bio: needs at least 10 entries"]
    assert error.details == {"errors": ["bio: needs at least 10 entries"]}


def test_configuration_error_code() -> None:
    assert ConfigurationError("LLM_API_KEY is required").code == ErrorCode.INTERNAL_CONFIGURATION_ERROR


def test_general_error_hides_cause_message() -> None:
    error = GeneralError(cause=RuntimeError("db password is hunter2"))

    assert error.code == ErrorCode.INTERNAL_UNEXPECTED
    assert error.message == GENERAL_ERROR_MESSAGE
    assert error.details == {"exception_type": "RuntimeError"}
    assert get_status_code(error.code) == 500
