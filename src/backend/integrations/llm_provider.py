"""
Chat model provider adapters.

Wraps the OpenAI, Anthropic and DeepSeek SDKs behind one small interface:
``complete(prompt)`` for single-shot calls and ``stream(prompt)`` for text
fragments in provider order. Handles are built once at application startup
(see ProviderHandles) and shared by every request.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

import anthropic
import httpx
import openai

from core.constants import (
    DEEPSEEK_BASE_URL,
    DEFAULT_GENERATION_READ_TIMEOUT,
    DEFAULT_LLM_MAX_TOKENS,
    DEFAULT_LLM_MODELS,
)
from core.exceptions import ConfigurationError, ProviderError
from integrations.embedding_service import EmbeddingConfig, EmbeddingService, create_embedding_service
from utils.client_factory import create_anthropic_client, create_http_client, create_openai_client
from utils.logger import logger

if TYPE_CHECKING:
    from anthropic import AsyncAnthropic
    from openai import AsyncOpenAI

    from core.constants import Settings


class LLMProvider(str, Enum):
    """Supported chat model providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    DEEPSEEK = "deepseek"

    @classmethod
    def parse(cls, value: str | LLMProvider) -> LLMProvider:
        """Resolve a provider name, raising ConfigurationError for unknown values."""
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
class LLMConfig:
    """Construction parameters for a chat model handle."""

    provider: LLMProvider
    api_key: str = field(repr=False)
    model_name: str | None = None
    temperature: float = 0.7
    max_tokens: int = DEFAULT_LLM_MAX_TOKENS
    read_timeout: float = DEFAULT_GENERATION_READ_TIMEOUT

    def validated(self) -> LLMConfig:
        """Normalized copy of this config.

        Raises:
            ConfigurationError: If the API key is empty or the provider is unknown
        """
        provider = LLMProvider.parse(self.provider)
        if not self.api_key:
            raise ConfigurationError("API key is required", details={"provider": provider.value})
        return replace(self, provider=provider)

    @property
    def resolved_model(self) -> str:
        return self.model_name or DEFAULT_LLM_MODELS[self.provider.value]


class LLMClient(Protocol):
    """Interface shared by all chat model adapters."""

    provider: LLMProvider
    model_name: str
    read_timeout: float

    async def complete(self, prompt: str) -> str: ...

    def stream(self, prompt: str) -> AsyncGenerator[str, None]: ...

    def with_model(self, model_name: str) -> LLMClient: ...


class OpenAIChatClient:
    """Chat Completions adapter, used for OpenAI and the OpenAI-compatible DeepSeek API."""

    def __init__(self, client: AsyncOpenAI, config: LLMConfig) -> None:
        self._client = client
        self._config = config
        self.provider = config.provider
        self.model_name = config.resolved_model
        self.read_timeout = config.read_timeout

    def _request_kwargs(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self.model_name,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
        }

    async def complete(self, prompt: str) -> str:
        try:
            response = await self._client.chat.completions.create(**self._request_kwargs(prompt))
        except openai.APIError as e:
            raise ProviderError(self.provider.value, str(e), cause=e) from e
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def stream(self, prompt: str) -> AsyncGenerator[str, None]:
        try:
            stream = await self._client.chat.completions.create(**self._request_kwargs(prompt), stream=True)
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except openai.APIError as e:
            raise ProviderError(self.provider.value, str(e), cause=e) from e

    def with_model(self, model_name: str) -> OpenAIChatClient:
        return OpenAIChatClient(self._client, replace(self._config, model_name=model_name))


class AnthropicChatClient:
    """Messages API adapter for Anthropic models."""

    def __init__(self, client: AsyncAnthropic, config: LLMConfig) -> None:
        self._client = client
        self._config = config
        self.provider = config.provider
        self.model_name = config.resolved_model
        self.read_timeout = config.read_timeout

    def _request_kwargs(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self.model_name,
            "max_tokens": self._config.max_tokens,
            "temperature": self._config.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }

    async def complete(self, prompt: str) -> str:
        try:
            response = await self._client.messages.create(**self._request_kwargs(prompt))
        except anthropic.APIError as e:
            raise ProviderError(self.provider.value, str(e), cause=e) from e
        return "".join(block.text for block in response.content if block.type == "text")

    async def stream(self, prompt: str) -> AsyncGenerator[str, None]:
        try:
            async with self._client.messages.stream(**self._request_kwargs(prompt)) as stream:
                async for event in stream:
                    if event.type == "content_block_delta" and event.delta.type == "text_delta":
                        yield event.delta.text
        except anthropic.APIError as e:
            raise ProviderError(self.provider.value, str(e), cause=e) from e

    def with_model(self, model_name: str) -> AnthropicChatClient:
        return AnthropicChatClient(self._client, replace(self._config, model_name=model_name))


def create_llm_client(config: LLMConfig, http_client: httpx.AsyncClient | None = None) -> LLMClient:
    """Build a chat model handle.

    Raises:
        ConfigurationError: If the API key is empty or the provider is unknown
    """
    config = config.validated()
    provider = config.provider

    if provider is LLMProvider.ANTHROPIC:
        return AnthropicChatClient(create_anthropic_client(config.api_key, http_client=http_client), config)
    if provider is LLMProvider.DEEPSEEK:
        client = create_openai_client(config.api_key, base_url=DEEPSEEK_BASE_URL, http_client=http_client)
        return OpenAIChatClient(client, config)
    return OpenAIChatClient(create_openai_client(config.api_key, http_client=http_client), config)


@dataclass
class ProviderHandles:
    """Process-wide provider handles, built once during startup and shared read-only."""

    llm: LLMClient
    repair_llm: LLMClient
    embeddings: EmbeddingService
    http_client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> ProviderHandles:
        """Build every provider handle from settings.

        Raises:
            ConfigurationError: On a missing key or unknown provider
        """
        # Configs are checked before the shared client exists, so a bad key leaves nothing open
        llm_config = LLMConfig(
            provider=LLMProvider.parse(settings.llm_provider),
            api_key=settings.llm_api_key,
            model_name=settings.llm_model_name,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            read_timeout=settings.generation_read_timeout,
        ).validated()
        embedding_config = EmbeddingConfig.from_settings(settings).validated()

        http_client = create_http_client(
            enable_logging=settings.http_request_logging,
            read_timeout=settings.http_read_timeout,
        )
        llm = create_llm_client(llm_config, http_client=http_client)
        embeddings = create_embedding_service(embedding_config, http_client=http_client)

        repair_llm = llm.with_model(settings.repair_model_name) if settings.repair_model_name else llm
        logger.info(
            f"Providers ready: chat={llm.provider.value}/{llm.model_name} "
            f"repair={repair_llm.model_name} embeddings={embeddings.model_name}",
            provider=llm.provider.value,
        )
        return cls(llm=llm, repair_llm=repair_llm, embeddings=embeddings, http_client=http_client)

    async def aclose(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()


__all__ = [
    "AnthropicChatClient",
    "LLMClient",
    "LLMConfig",
    "LLMProvider",
    "OpenAIChatClient",
    "ProviderHandles",
    "create_llm_client",
]
