"""
Logging setup for Delila using Python's standard logging
with JSON formatting for structured logs.

Log destinations:
- Console (stderr): Human-readable format for debugging
- logs/conversations.jsonl: JSON format for conversation turns
- logs/errors.jsonl: JSON format for error tracking
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
import sys
import uuid

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pythonjsonlogger import json as jsonlogger

from api.middleware.request_context import get_request_context
from core.constants import (
    LOG_BACKUP_COUNT_CONVERSATIONS,
    LOG_BACKUP_COUNT_ERRORS,
    LOG_MAX_SIZE,
    LOG_PREVIEW_LENGTH,
    PROJECT_ROOT,
    SESSION_ID_LENGTH,
    get_settings,
)

LOGGER_NAME = "delila"

# PII and credential redaction patterns
REDACTION_PATTERNS = [
    (r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b", "[EMAIL]"),
    (r"\b(?:\d{4}[- ]?){3}\d{4}\b", "[CARD]"),
    (r"\b(sk-|pk-|api[-_]?key[-_]?)[A-Za-z0-9]{20,}\b", "[API_KEY]"),
    (r"\b(password|secret|token)\s*[:=]\s*\S+", "[REDACTED]"),
]


@dataclass
class ConversationTurn:
    """Structured representation of a chat turn for logging."""

    user_input: str
    reply: str
    document_chars: int = 0
    repaired: bool = False
    placeholder: bool = False
    duration_ms: float | None = None
    session_id: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())


class ConversationFilter(logging.Filter):
    """Pass INFO and above to the conversation log."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.INFO


class ErrorFilter(logging.Filter):
    """Pass ERROR and CRITICAL only."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


class ColoredConsoleFormatter(logging.Formatter):
    """
    Console formatter: ``HH:MM:SS [LEVEL] logger - message``.

    uvicorn access records are rewritten so the status code is colored by
    class (2xx/3xx green, 4xx yellow, 5xx red).
    """

    RESET = "\x1b[0m"
    BOLD = "\x1b[1m"

    LEVEL_COLORS = {
        logging.DEBUG: "\x1b[38;20m",
        logging.INFO: "\x1b[32;20m",
        logging.WARNING: "\x1b[33;20m",
        logging.ERROR: "\x1b[31;20m",
        logging.CRITICAL: "\x1b[31;1m",
    }

    def _paint(self, text: str, color: str | None) -> str:
        return f"{color}{text}{self.RESET}" if color else text

    def _status_color(self, status_code: int) -> str:
        if status_code >= 500:
            return self.LEVEL_COLORS[logging.ERROR]
        if status_code >= 400:
            return self.LEVEL_COLORS[logging.WARNING]
        return self.LEVEL_COLORS[logging.INFO]

    def _access_message(self, args: tuple[Any, ...]) -> str:
        client_addr, method, full_path, http_version, status_code = args
        status = self._paint(str(status_code), self._status_color(int(status_code)))
        return f'{client_addr} - "{self._paint(str(method), self.BOLD)} {full_path} HTTP/{http_version}" {status}'

    def format(self, record: logging.LogRecord) -> str:
        record.asctime = self.formatTime(record, "%H:%M:%S")
        level = self._paint(f"[{record.levelname}]", self.LEVEL_COLORS.get(record.levelno))

        if record.name == "uvicorn.access" and isinstance(record.args, tuple) and len(record.args) == 5:
            message = self._access_message(record.args)
        else:
            message = record.getMessage()
        return f"{record.asctime} {level} {record.name} - {message}"


def configure_uvicorn_logging() -> None:
    """Route uvicorn's access and error loggers through the colored formatter."""
    logging.getLogger("uvicorn").handlers = []
    logging.getLogger("uvicorn").setLevel(logging.INFO)

    for name in ("uvicorn.access", "uvicorn.error"):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(ColoredConsoleFormatter())

        uv_logger = logging.getLogger(name)
        uv_logger.handlers = [handler]
        uv_logger.setLevel(logging.INFO)
        uv_logger.propagate = False


def _json_file_handler(
    path: Path,
    backup_count: int,
    level: int,
    log_filter: logging.Filter,
    fields: str,
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=LOG_MAX_SIZE,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.addFilter(log_filter)
    handler.setFormatter(jsonlogger.JsonFormatter(fields, timestamp=True))
    return handler


def setup_logging(name: str = LOGGER_NAME, debug: bool | None = None) -> logging.Logger:
    """
    Build the Delila logger: colored console plus two rotating JSONL files.

    Args:
        name: Logger name
        debug: Console at DEBUG level (defaults to the DEBUG env var)

    Returns:
        Configured logger instance
    """
    if debug is None:
        debug = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes")

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers = []

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if debug else logging.INFO)
    console.setFormatter(ColoredConsoleFormatter())
    logger.addHandler(console)

    log_dir = PROJECT_ROOT / "logs"
    log_dir.mkdir(exist_ok=True)

    logger.addHandler(
        _json_file_handler(
            log_dir / "conversations.jsonl",
            LOG_BACKUP_COUNT_CONVERSATIONS,
            logging.INFO,
            ConversationFilter(),
            "%(timestamp)s %(levelname)s %(message)s %(session_id)s %(stage)s %(provider)s",
        )
    )
    logger.addHandler(
        _json_file_handler(
            log_dir / "errors.jsonl",
            LOG_BACKUP_COUNT_ERRORS,
            logging.ERROR,
            ErrorFilter(),
            "%(timestamp)s %(levelname)s %(name)s %(message)s",
        )
    )
    return logger


class ChatLogger:
    """
    High-level logging interface for Delila.
    Wraps standard Python logging with convenience methods.
    """

    def __init__(self, name: str = LOGGER_NAME):
        self.logger = setup_logging(name)
        self.session_id = str(uuid.uuid4())[:SESSION_ID_LENGTH]

    def _enrich_context(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        """Enrich log arguments with request context and session ID."""
        if ctx := get_request_context():
            for key, value in ctx.to_log_context().items():
                kwargs.setdefault(key, value)
        kwargs.setdefault("session_id", self.session_id)
        return kwargs

    def debug(self, message: str, **kwargs: Any) -> None:
        """Debug level logging"""
        self.logger.debug(message, extra=self._enrich_context(kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        """Info level logging"""
        self.logger.info(message, extra=self._enrich_context(kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        """Warning level logging"""
        self.logger.warning(message, extra=self._enrich_context(kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        """Error level logging with optional exception info"""
        self.logger.error(message, extra=self._enrich_context(kwargs), exc_info=exc_info)

    def _should_log_content(self) -> bool:
        """Check if content logging is enabled via settings."""
        try:
            return bool(get_settings().enable_content_logging)
        except ValueError:
            # Settings failed validation; keep content out of the logs
            return False

    def _redact_content(self, text: str) -> str:
        """Redact PII and credentials from text."""
        if not text:
            return text

        redacted = text
        for pattern, replacement in REDACTION_PATTERNS:
            redacted = re.sub(pattern, replacement, redacted)
        return redacted

    def _preview(self, text: str) -> str:
        preview = self._redact_content(text[:LOG_PREVIEW_LENGTH].replace("\n", " "))
        if len(text) > LOG_PREVIEW_LENGTH:
            preview += "..."
        return preview

    def log_conversation_turn(
        self,
        session_id: str,
        user_input: str,
        reply: str,
        document_chars: int = 0,
        repaired: bool = False,
        placeholder: bool = False,
        duration_ms: float | None = None,
        provider: str | None = None,
    ) -> None:
        """Log a committed chat turn. Content is hidden unless content logging is enabled."""
        turn = ConversationTurn(
            user_input=user_input,
            reply=reply,
            document_chars=document_chars,
            repaired=repaired,
            placeholder=placeholder,
            duration_ms=duration_ms,
            session_id=session_id,
        )

        should_log_content = self._should_log_content()
        if should_log_content:
            user_preview = self._preview(turn.user_input)
            reply_preview = self._preview(turn.reply)
        else:
            user_preview = "[HIDDEN]"
            reply_preview = "[HIDDEN]"

        msg_parts = [f"User: {user_preview} → Delila: {reply_preview}"]
        msg_parts.append(f"[document {turn.document_chars} chars]")
        if turn.repaired:
            msg_parts.append("[repaired]")
        if turn.placeholder:
            msg_parts.append("[placeholder]")
        if turn.duration_ms:
            msg_parts.append(f"[{turn.duration_ms:.0f}ms]")

        extra_data: dict[str, Any] = {
            "conversation_turn": True,
            "timestamp": turn.timestamp,
            "chars_input": len(turn.user_input),
            "chars_reply": len(turn.reply),
            "chars_document": turn.document_chars,
            "repaired": turn.repaired,
            "placeholder": turn.placeholder,
            "content_logging": should_log_content,
        }
        if provider:
            extra_data["provider"] = provider
        if turn.duration_ms is not None:
            extra_data["ms"] = int(turn.duration_ms)

        extra_data = self._enrich_context(extra_data)
        # The turn's own session wins over any id found in the request path
        extra_data["session_id"] = turn.session_id

        self.logger.info(" ".join(msg_parts), extra=extra_data)

    def log_pipeline_stage(self, stage: str, duration_ms: float | None = None, **kwargs: Any) -> None:
        """Log a generation pipeline transition at debug level."""
        message = f"Pipeline stage: {stage}"
        if duration_ms is not None:
            message += f" [{duration_ms:.0f}ms]"
            kwargs["ms"] = int(duration_ms)
        kwargs["stage"] = stage
        self.logger.debug(message, extra=self._enrich_context(kwargs))


# Global logger instance
logger = ChatLogger()
