"""
FastAPI dependencies for the Delila API.

Everything here hands out objects the lifespan in api.main built once and
stored on ``app.state``; nothing is constructed per request.
"""

from __future__ import annotations

from typing import Annotated, Any

import asyncpg

from fastapi import Depends, Request

from api.services.chat_service import ChatService
from api.services.context_service import ContextStore
from api.services.session_service import SessionService
from core.constants import Settings, get_settings
from integrations.llm_provider import ProviderHandles


def get_app_settings() -> Settings:
    """Validated settings; reloaded per call only when CONFIG_HOT_RELOAD is on.

    Usage in routes:
        @router.get("/example")
        async def example(settings: AppSettings):
            return {"provider": settings.llm_provider}
    """
    return get_settings()


def _from_state(request: Request, name: str) -> Any:
    try:
        return getattr(request.app.state, name)
    except AttributeError as e:
        raise RuntimeError(f"app.state.{name} is not set; the application lifespan has not run") from e


async def get_db(request: Request) -> asyncpg.Pool:
    """Session database pool."""
    return _from_state(request, "db_pool")


async def get_vector_pool(request: Request) -> asyncpg.Pool:
    """Context store pool; the session pool itself unless VECTOR_STORE_URL differs."""
    return _from_state(request, "vector_pool")


def get_providers(request: Request) -> ProviderHandles:
    return _from_state(request, "providers")


def get_session_service(request: Request) -> SessionService:
    """Session store shared across requests (it owns the document cache)."""
    return _from_state(request, "session_service")


def get_context_store(request: Request) -> ContextStore:
    return _from_state(request, "context_store")


def get_chat_service(request: Request) -> ChatService:
    return _from_state(request, "chat_service")


DB = Annotated[asyncpg.Pool, Depends(get_db)]
VectorDB = Annotated[asyncpg.Pool, Depends(get_vector_pool)]
Providers = Annotated[ProviderHandles, Depends(get_providers)]
Sessions = Annotated[SessionService, Depends(get_session_service)]
Context = Annotated[ContextStore, Depends(get_context_store)]
Chat = Annotated[ChatService, Depends(get_chat_service)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
