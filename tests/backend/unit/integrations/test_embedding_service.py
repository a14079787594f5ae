"""Tests for the embedding service."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, Mock, patch

import httpx
import openai
import pytest

from core.exceptions import ConfigurationError, ProviderError
from integrations.embedding_service import (
    EmbeddingConfig,
    EmbeddingProvider,
    EmbeddingService,
    create_embedding_service,
)
from models.error_models import ErrorCode


@pytest.fixture
def config() -> EmbeddingConfig:
    return EmbeddingConfig(provider=EmbeddingProvider.OPENAI, api_key="test-key")


@pytest.fixture
def service(mock_openai_client: Mock, config: EmbeddingConfig) -> EmbeddingService:
    return EmbeddingService(mock_openai_client, config)


def test_config_from_settings(mock_settings_for_ci: MagicMock) -> None:
    config = EmbeddingConfig.from_settings(mock_settings_for_ci)

    assert config.provider is EmbeddingProvider.OPENAI
    assert config.model_name == "text-embedding-3-large"
    assert config.dimensions == 1536
    assert config.endpoint is None


def test_parse_unknown_provider() -> None:
    with pytest.raises(ConfigurationError, match="Invalid provider"):
        EmbeddingProvider.parse("cohere")


@pytest.mark.asyncio
async def test_embed_text(service: EmbeddingService, mock_openai_client: Mock) -> None:
    mock_openai_client.embeddings.create.return_value = SimpleNamespace(
        data=[SimpleNamespace(index=0, embedding=[0.1, 0.2, 0.3])]
    )

    result = await service.embed_text("Nova loves space")

    assert result == [0.1, 0.2, 0.3]
    mock_openai_client.embeddings.create.assert_awaited_once_with(
        model="text-embedding-3-large", input="Nova loves space", dimensions=1536
    )


@pytest.mark.asyncio
async def test_embed_batch_restores_input_order(service: EmbeddingService, mock_openai_client: Mock) -> None:
    mock_openai_client.embeddings.create.return_value = SimpleNamespace(
        data=[
            SimpleNamespace(index=1, embedding=[1.0]),
            SimpleNamespace(index=0, embedding=[0.0]),
            SimpleNamespace(index=2, embedding=[2.0]),
        ]
    )

    result = await service.embed_batch(["a", "b", "c"])

    assert result == [[0.0], [1.0], [2.0]]


@pytest.mark.asyncio
async def test_embed_batch_empty_skips_call(service: EmbeddingService, mock_openai_client: Mock) -> None:
    assert await service.embed_batch([]) == []
    mock_openai_client.embeddings.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_embed_batch_over_limit(service: EmbeddingService) -> None:
    with pytest.raises(ValueError, match="exceeds limit of 100"):
        await service.embed_batch(["x"] * 101)


@pytest.mark.asyncio
async def test_api_error_becomes_provider_error(service: EmbeddingService, mock_openai_client: Mock) -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
    mock_openai_client.embeddings.create.side_effect = openai.APIError("quota exceeded", request, body=None)

    with pytest.raises(ProviderError) as exc_info:
        await service.embed_text("hello")

    assert exc_info.value.code == ErrorCode.EMBEDDING_PROVIDER_ERROR
    assert exc_info.value.provider == "openai"


def test_content_hash_is_stable() -> None:
    first = EmbeddingService.content_hash("Nova loves space")

    assert first == EmbeddingService.content_hash("Nova loves space")
    assert first != EmbeddingService.content_hash("Nova loves music")
    assert len(first) == 64


class TestCreateEmbeddingService:
    def test_openai(self, config: EmbeddingConfig) -> None:
        with patch("integrations.embedding_service.create_openai_client") as mock_create:
            service = create_embedding_service(config)

        assert service.model_name == "text-embedding-3-large"
        assert mock_create.call_args.kwargs["base_url"] is None

    def test_azure_uses_endpoint(self) -> None:
        config = EmbeddingConfig(
            provider=EmbeddingProvider.AZURE, api_key="test-key", endpoint="https://nova.openai.azure.com/"
        )

        with patch("integrations.embedding_service.create_openai_client") as mock_create:
            create_embedding_service(config)

        assert mock_create.call_args.kwargs["base_url"] == "https://nova.openai.azure.com/"

    def test_azure_without_endpoint(self) -> None:
        config = EmbeddingConfig(provider=EmbeddingProvider.AZURE, api_key="test-key")

        with pytest.raises(ConfigurationError, match="endpoint is required"):
            create_embedding_service(config)

    def test_missing_key(self) -> None:
        with pytest.raises(ConfigurationError, match="API key is required"):
            create_embedding_service(EmbeddingConfig(provider=EmbeddingProvider.OPENAI, api_key=""))
