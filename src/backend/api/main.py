"""
Delila API application.

The lifespan builds every long-lived handle once (provider clients, one or
two asyncpg pools, the context store and the services on top of them),
stores them on ``app.state`` and releases them in reverse order on shutdown.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import asyncpg

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware.exception_handlers import register_exception_handlers
from api.middleware.request_context import (
    REQUEST_ID_HEADER,
    RESPONSE_TIME_HEADER,
    SESSION_ID_HEADER,
    RequestContextMiddleware,
)
from api.routes.v1 import router as v1_router
from api.services.chat_service import ChatService
from api.services.context_service import ContextStore
from api.services.session_service import SessionService
from core.constants import get_settings
from core.pipeline import VECTOR_STORE_ERRORS, GenerationPipeline
from integrations.llm_provider import ProviderHandles
from utils.cache import DocumentCache
from utils.db_utils import check_pool_health, create_database_pool, graceful_pool_close
from utils.logger import configure_uvicorn_logging, logger

settings = get_settings()

if settings.debug:
    from core.constants import _get_env_files

    logger.info(f"Env files: {[f.name for f in _get_env_files()]}")
    logger.info(
        f"Settings: app_env={settings.app_env}, provider={settings.llm_provider}, "
        f"vector_store={'separate' if settings.uses_separate_vector_store else 'shared'}"
    )

configure_uvicorn_logging()

API_DESCRIPTION = """
Conversational builder for elizaOS character files. Each chat turn streams
the assistant reply and then the updated, validated character file as
server-sent events. Knowledge snippets stored in pgvector are retrieved
per message and given to the model as context.

All routes live under `/api/v1`.
"""

OPENAPI_TAGS = [
    {"name": "Health", "description": "Probes and dependency status"},
    {"name": "Eliza", "description": "Character-building chat over server-sent events"},
    {"name": "Sessions", "description": "Session history and current character file"},
    {"name": "Context", "description": "Knowledge snippet ingestion and similarity search"},
]


async def _open_pool(dsn: str, label: str) -> asyncpg.Pool:
    return await create_database_pool(
        dsn=dsn,
        label=label,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        command_timeout=settings.db_command_timeout,
        connection_timeout=settings.db_connection_timeout,
        statement_cache_size=settings.db_statement_cache_size,
        max_inactive_connection_lifetime=settings.db_max_inactive_connection_lifetime,
    )


async def _open_pools(app: FastAPI) -> None:
    """Sessions pool (must answer) and vector pool (shared unless VECTOR_STORE_URL differs)."""
    app.state.db_pool = await _open_pool(settings.database_url, "sessions")

    health = await check_pool_health(app.state.db_pool)
    if not health["healthy"]:
        logger.error(f"Sessions database unreachable at startup: {health.get('error')}")
        await graceful_pool_close(app.state.db_pool, timeout=settings.shutdown_timeout)
        raise RuntimeError("Database connection failed")
    logger.info(f"Sessions pool healthy: {health['size']} connections")

    if settings.uses_separate_vector_store:
        app.state.vector_pool = await _open_pool(settings.vector_store_dsn, "vectors")
    else:
        app.state.vector_pool = app.state.db_pool


async def _close_pools(app: FastAPI) -> None:
    if app.state.vector_pool is not app.state.db_pool:
        await graceful_pool_close(app.state.vector_pool, timeout=settings.shutdown_timeout)
    await graceful_pool_close(app.state.db_pool, timeout=settings.shutdown_timeout)


async def _build_services(app: FastAPI, handles: ProviderHandles) -> None:
    context_store = ContextStore(app.state.vector_pool, handles.embeddings, settings.vector_store_table)
    try:
        await context_store.init()
    except VECTOR_STORE_ERRORS as e:
        # Searches retry initialization; until then turns run without context
        logger.warning(f"Context store not ready at startup: {e}", table=context_store.table)
    app.state.context_store = context_store

    document_cache: DocumentCache | None = None
    if settings.document_cache_ttl > 0:
        document_cache = DocumentCache(ttl=settings.document_cache_ttl)
    session_service = SessionService(app.state.db_pool, document_cache=document_cache)
    app.state.session_service = session_service

    pipeline = GenerationPipeline(
        session_service,
        context_store,
        handles.llm,
        handles.repair_llm,
        top_k=settings.context_top_k,
        read_timeout=settings.generation_read_timeout,
        stream_partial_documents=settings.stream_partial_documents,
    )
    app.state.chat_service = ChatService(session_service, pipeline)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Missing keys or an unknown provider stop startup before any pool opens
    handles = ProviderHandles.from_settings(settings)
    app.state.providers = handles

    try:
        await _open_pools(app)
    except BaseException:
        await handles.aclose()
        raise

    try:
        await _build_services(app, handles)
        yield
    finally:
        logger.info("Shutting down: closing pools and provider clients")
        await _close_pools(app)
        await handles.aclose()


def create_app() -> FastAPI:
    application = FastAPI(
        title="Delila API",
        description=API_DESCRIPTION,
        version=settings.app_version,
        lifespan=lifespan,
        openapi_tags=OPENAPI_TAGS,
        openapi_url="/api/v1/openapi.json",
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
    )
    register_exception_handlers(application)

    # Added last, runs first: CORS wraps the request context
    application.add_middleware(RequestContextMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[SESSION_ID_HEADER, REQUEST_ID_HEADER, RESPONSE_TIME_HEADER],
    )

    application.include_router(v1_router, prefix="/api/v1")
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        reload_dirs=["src/backend"],
        log_config=None,
    )
