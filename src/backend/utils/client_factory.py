"""
Provider SDK client factory utilities.
Centralizes AsyncOpenAI and AsyncAnthropic creation with consistent HTTP configuration.
"""

from __future__ import annotations

from typing import Any

import httpx

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from utils.logger import logger

# The generation pipeline applies its own per-chunk deadline on top of the read timeout
DEFAULT_CONNECT_TIMEOUT = 30.0
DEFAULT_READ_TIMEOUT = 600.0
DEFAULT_WRITE_TIMEOUT = 30.0
DEFAULT_POOL_TIMEOUT = 30.0

SENSITIVE_HEADERS = ("authorization", "api-key", "x-api-key")


def _sanitize_headers(headers: httpx.Headers) -> dict[str, str]:
    """Mask credential headers down to their last four characters."""
    sanitized = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            value = f"***{value[-4:]}" if len(value) > 4 else "***"
        sanitized[key] = value
    return sanitized


async def _log_request(request: httpx.Request) -> None:
    logger.info(
        f"HTTP Request: {request.method} {request.url}",
        http_request=True,
        method=request.method,
        url=str(request.url),
        headers=_sanitize_headers(request.headers),
    )


async def _log_response(response: httpx.Response) -> None:
    # Bodies are streamed to the caller, so only status and headers are captured
    logger.info(
        f"HTTP Response: {response.status_code} {response.request.method} {response.request.url}",
        http_response=True,
        status_code=response.status_code,
    )


def create_http_client(
    enable_logging: bool = False,
    read_timeout: float | None = None,
) -> httpx.AsyncClient:
    """Create HTTP client with proper timeouts for streaming.

    Args:
        enable_logging: Log each provider request and response line
        read_timeout: Read timeout in seconds (default: 600s)
    """
    timeout = httpx.Timeout(
        connect=DEFAULT_CONNECT_TIMEOUT,
        read=read_timeout if read_timeout is not None else DEFAULT_READ_TIMEOUT,
        write=DEFAULT_WRITE_TIMEOUT,
        pool=DEFAULT_POOL_TIMEOUT,
    )

    if enable_logging:
        return httpx.AsyncClient(
            timeout=timeout,
            event_hooks={"request": [_log_request], "response": [_log_response]},
        )

    return httpx.AsyncClient(timeout=timeout)


def create_openai_client(
    api_key: str,
    base_url: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AsyncOpenAI:
    """Create AsyncOpenAI client with consistent configuration.

    Also used for DeepSeek, whose API is OpenAI-compatible at a different base URL.

    Args:
        api_key: Provider API key
        base_url: Optional base URL for Azure, DeepSeek or custom endpoints
        http_client: Optional shared httpx client
    """
    kwargs: dict[str, Any] = {"api_key": api_key, "http_client": http_client}
    if base_url:
        kwargs["base_url"] = base_url
    return AsyncOpenAI(**kwargs)


def create_anthropic_client(
    api_key: str,
    http_client: httpx.AsyncClient | None = None,
) -> AsyncAnthropic:
    """Create AsyncAnthropic client with consistent configuration."""
    kwargs: dict[str, Any] = {"api_key": api_key}
    if http_client is not None:
        kwargs["http_client"] = http_client
    return AsyncAnthropic(**kwargs)


__all__ = [
    "create_anthropic_client",
    "create_http_client",
    "create_openai_client",
]
