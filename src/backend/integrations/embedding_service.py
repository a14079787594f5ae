"""
Embedding service for generating text embeddings via OpenAI or Azure OpenAI.

Defaults to text-embedding-3-large reduced to 1536 dimensions so vectors fit
a pgvector HNSW index.
"""

from __future__ import annotations

import hashlib

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING

import openai

from core.constants import DEFAULT_EMBEDDING_DIMENSIONS, DEFAULT_EMBEDDING_MODEL, EMBEDDING_BATCH_SIZE
from core.exceptions import ConfigurationError, ProviderError
from models.error_models import ErrorCode
from utils.client_factory import create_openai_client
from utils.logger import logger

if TYPE_CHECKING:
    import httpx

    from openai import AsyncOpenAI

    from core.constants import Settings


class EmbeddingProvider(str, Enum):
    """Supported embedding providers."""

    OPENAI = "openai"
    AZURE = "azure"

    @classmethod
    def parse(cls, value: str | EmbeddingProvider) -> EmbeddingProvider:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(
                "Invalid provider",
                details={"provider": value, "supported": [p.value for p in cls]},
            ) from None


@dataclass(frozen=True)
class EmbeddingConfig:
    """Construction parameters for an embedding handle."""

    provider: EmbeddingProvider
    api_key: str = field(repr=False)
    model_name: str = DEFAULT_EMBEDDING_MODEL
    dimensions: int = DEFAULT_EMBEDDING_DIMENSIONS
    endpoint: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> EmbeddingConfig:
        return cls(
            provider=EmbeddingProvider.parse(settings.embedding_provider),
            api_key=settings.embedding_api_key,
            model_name=settings.embedding_model_name,
            dimensions=settings.embedding_dimensions,
            endpoint=settings.azure_endpoint_str or None,
        )

    def validated(self) -> EmbeddingConfig:
        """Normalized copy of this config.

        Raises:
            ConfigurationError: If the key is empty, the provider is unknown,
                or Azure is selected without an endpoint
        """
        provider = EmbeddingProvider.parse(self.provider)
        if not self.api_key:
            raise ConfigurationError("API key is required", details={"provider": provider.value})
        if provider is EmbeddingProvider.AZURE and not self.endpoint:
            raise ConfigurationError("Azure OpenAI endpoint is required", details={"provider": provider.value})
        return replace(self, provider=provider)


class EmbeddingService:
    """Generate embeddings through the OpenAI embeddings API.

    Provides:
    - Single text embedding
    - Batch text embedding (up to 100 texts, order preserved)
    - Content hash generation for deduplication
    """

    def __init__(self, client: AsyncOpenAI, config: EmbeddingConfig) -> None:
        self._client = client
        self._config = config
        self.provider = config.provider
        self.model_name = config.model_name
        self.dimensions = config.dimensions

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Raises:
            ProviderError: If the embeddings call fails
        """
        try:
            response = await self._client.embeddings.create(
                model=self.model_name,
                input=text,
                dimensions=self.dimensions,
            )
        except openai.APIError as e:
            logger.error("Embedding generation failed", error=str(e), text_length=len(text))
            raise ProviderError(
                self.provider.value, str(e), code=ErrorCode.EMBEDDING_PROVIDER_ERROR, cause=e
            ) from e
        return response.data[0].embedding

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts.

        Raises:
            ValueError: If batch size exceeds limit
            ProviderError: If the embeddings call fails
        """
        if len(texts) > EMBEDDING_BATCH_SIZE:
            raise ValueError(f"Batch size {len(texts)} exceeds limit of {EMBEDDING_BATCH_SIZE}")

        if not texts:
            return []

        try:
            response = await self._client.embeddings.create(
                model=self.model_name,
                input=texts,
                dimensions=self.dimensions,
            )
        except openai.APIError as e:
            logger.error("Batch embedding generation failed", error=str(e), batch_size=len(texts))
            raise ProviderError(
                self.provider.value, str(e), code=ErrorCode.EMBEDDING_PROVIDER_ERROR, cause=e
            ) from e

        # The API may return items out of order
        sorted_data = sorted(response.data, key=lambda x: x.index)
        return [item.embedding for item in sorted_data]

    @staticmethod
    def content_hash(content: str) -> str:
        """SHA-256 hex digest used to deduplicate ingested snippets."""
        return hashlib.sha256(content.encode()).hexdigest()


def create_embedding_service(
    config: EmbeddingConfig,
    http_client: httpx.AsyncClient | None = None,
) -> EmbeddingService:
    """Build an embedding handle.

    Raises:
        ConfigurationError: If the key is empty, the provider is unknown,
            or Azure is selected without an endpoint
    """
    config = config.validated()
    base_url = config.endpoint if config.provider is EmbeddingProvider.AZURE else None
    client = create_openai_client(api_key=config.api_key, base_url=base_url, http_client=http_client)
    return EmbeddingService(client, config)


__all__ = [
    "EmbeddingConfig",
    "EmbeddingProvider",
    "EmbeddingService",
    "create_embedding_service",
]
