"""Tests for provider SDK client factory utilities.

Tests client creation and HTTP configuration.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import httpx
import pytest

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from utils.client_factory import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_READ_TIMEOUT,
    _log_request,
    _sanitize_headers,
    create_anthropic_client,
    create_http_client,
    create_openai_client,
)


class TestCreateHttpClient:
    """Tests for create_http_client function."""

    def test_create_http_client_default(self) -> None:
        result = create_http_client()

        assert isinstance(result, httpx.AsyncClient)
        assert result.timeout.connect == DEFAULT_CONNECT_TIMEOUT
        assert result.timeout.read == DEFAULT_READ_TIMEOUT

    def test_create_http_client_custom_read_timeout(self) -> None:
        result = create_http_client(read_timeout=120.0)

        assert result.timeout.read == 120.0

    def test_create_http_client_with_logging_registers_hooks(self) -> None:
        result = create_http_client(enable_logging=True)

        assert len(result.event_hooks["request"]) == 1
        assert len(result.event_hooks["response"]) == 1

    def test_create_http_client_without_logging_has_no_hooks(self) -> None:
        result = create_http_client(enable_logging=False)

        assert result.event_hooks["request"] == []
        assert result.event_hooks["response"] == []


class TestHeaderSanitizing:
    def test_masks_credentials(self) -> None:
        headers = httpx.Headers({"Authorization": "Bearer sk-abcdef1234", "x-api-key": "key"})

        sanitized = _sanitize_headers(headers)

        assert sanitized["authorization"] == "***1234"
        assert sanitized["x-api-key"] == "***"

    def test_leaves_other_headers(self) -> None:
        sanitized = _sanitize_headers(httpx.Headers({"Content-Type": "application/json"}))

        assert sanitized["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_request_hook_never_logs_raw_key(self) -> None:
        request = httpx.Request("POST", "https://api.example.com/v1", headers={"Authorization": "Bearer sk-secret9876"})

        with patch("utils.client_factory.logger") as mock_logger:
            await _log_request(request)

        kwargs = mock_logger.info.call_args.kwargs
        assert kwargs["headers"]["authorization"] == "***9876"
        assert "sk-secret" not in str(mock_logger.info.call_args)


class TestCreateProviderClients:
    def test_create_openai_client(self) -> None:
        client = create_openai_client("test-key")

        assert isinstance(client, AsyncOpenAI)
        assert client.api_key == "test-key"

    def test_create_openai_client_with_base_url(self) -> None:
        client = create_openai_client("test-key", base_url="https://api.deepseek.com")

        assert str(client.base_url).startswith("https://api.deepseek.com")

    def test_create_openai_client_passes_http_client(self) -> None:
        http_client = MagicMock(spec=httpx.AsyncClient)

        with patch("utils.client_factory.AsyncOpenAI") as mock_openai:
            create_openai_client("test-key", http_client=http_client)

        mock_openai.assert_called_once_with(api_key="test-key", http_client=http_client)

    def test_create_anthropic_client(self) -> None:
        client = create_anthropic_client("test-key")

        assert isinstance(client, AsyncAnthropic)
        assert client.api_key == "test-key"

    def test_create_anthropic_client_passes_http_client(self) -> None:
        http_client = MagicMock(spec=httpx.AsyncClient)

        with patch("utils.client_factory.AsyncAnthropic") as mock_anthropic:
            create_anthropic_client("test-key", http_client=http_client)

        mock_anthropic.assert_called_once_with(api_key="test-key", http_client=http_client)
