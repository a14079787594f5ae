"""
Health endpoints (v1).

/health aggregates both pools, the context store and the configured models.
A dead sessions database is "unhealthy"; a context store that is not usable
is only "degraded", since chat turns then run without retrieved context.
"""

from __future__ import annotations

import asyncio

from typing import Any

import asyncpg

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from api.dependencies import DB, AppSettings, Context, Providers, VectorDB
from models.schemas.health import (
    ContextStoreHealth,
    HealthResponse,
    HealthStatus,
    LivenessResponse,
    ModelInfo,
    PoolHealth,
    ReadinessResponse,
)
from utils.db_utils import HEALTH_CHECK_TIMEOUT, check_pool_health
from utils.logger import logger

router = APIRouter()


def _pool_health(stats: dict[str, Any]) -> PoolHealth:
    return PoolHealth(
        healthy=stats["healthy"],
        size=stats["size"],
        idle=stats["idle"],
        in_use=stats["in_use"],
        error=stats.get("error"),
    )


async def _document_count(store: Context) -> int | None:
    if not store.initialized:
        return None
    try:
        return await store.count()
    except (OSError, TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        logger.warning(f"Context store count failed: {e}", table=store.table)
        return None


def _overall_status(sessions_db: PoolHealth, context_store: ContextStoreHealth) -> HealthStatus:
    if not sessions_db.healthy:
        return "unhealthy"
    store_pool_ok = context_store.pool is None or context_store.pool.healthy
    if context_store.initialized and store_pool_ok and context_store.documents is not None:
        return "healthy"
    return "degraded"


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Sessions database, context store and configured models.",
)
async def health_check(
    db: DB,
    vector_db: VectorDB,
    store: Context,
    providers: Providers,
    settings: AppSettings,
) -> HealthResponse:
    sessions_db = _pool_health(await check_pool_health(db))

    separate = vector_db is not db
    context_store = ContextStoreHealth(
        initialized=store.initialized,
        table=store.table,
        documents=await _document_count(store),
        pool=_pool_health(await check_pool_health(vector_db)) if separate else None,
    )

    return HealthResponse(
        status=_overall_status(sessions_db, context_store),
        version=settings.app_version,
        models=ModelInfo(
            provider=providers.llm.provider.value,
            chat_model=providers.llm.model_name,
            repair_model=providers.repair_llm.model_name,
            embedding_model=providers.embeddings.model_name,
        ),
        sessions_db=sessions_db,
        context_store=context_store,
    )


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    description="Ready once the sessions database answers; chat cannot run without it.",
    responses={503: {"model": ReadinessResponse, "description": "Sessions database unreachable"}},
)
async def readiness_check(db: DB) -> ReadinessResponse | JSONResponse:
    try:
        await asyncio.wait_for(db.fetchval("SELECT 1"), timeout=HEALTH_CHECK_TIMEOUT)
    except (OSError, TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        return JSONResponse(
            status_code=503,
            content=ReadinessResponse(ready=False, error=str(e) or type(e).__name__).model_dump(),
        )
    return ReadinessResponse(ready=True)


@router.get(
    "/health/live",
    response_model=LivenessResponse,
    summary="Liveness probe",
)
async def liveness_check() -> LivenessResponse:
    return LivenessResponse()
