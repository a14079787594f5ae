"""
Health probe schemas.

``/health`` reports both connection pools, the context store and which
models the process is configured to call; ``/health/ready`` and
``/health/live`` are minimal probes for orchestrators.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

HealthStatus = Literal["healthy", "degraded", "unhealthy"]


class PoolHealth(BaseModel):
    """One asyncpg pool: reachability plus connection counts."""

    healthy: bool = Field(..., description="A connection answered SELECT 1")
    size: int = Field(default=0, ge=0, description="Open connections")
    idle: int = Field(default=0, ge=0, description="Connections waiting in the pool")
    in_use: int = Field(default=0, ge=0, description="Connections checked out")
    error: str | None = Field(default=None, description="Why the pool is unhealthy")


class ContextStoreHealth(BaseModel):
    """pgvector table backing context retrieval."""

    initialized: bool = Field(..., description="Extension, table and index are in place")
    table: str = Field(..., description="Context table name")
    documents: int | None = Field(default=None, ge=0, description="Stored snippets, when countable")
    pool: PoolHealth | None = Field(default=None, description="Vector database pool when it is separate")


class ModelInfo(BaseModel):
    """Models the generation pipeline is configured to call."""

    provider: str = Field(..., description="Chat provider")
    chat_model: str = Field(..., description="Model for replies and character files")
    repair_model: str = Field(..., description="Model for the repair pass")
    embedding_model: str = Field(..., description="Model for context embeddings")


class HealthResponse(BaseModel):
    """Aggregate health; degraded means chat works without retrieved context."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "version": "1.0.0",
                "models": {
                    "provider": "anthropic",
                    "chat_model": "claude-3-5-sonnet-20240620",
                    "repair_model": "claude-3-5-sonnet-20240620",
                    "embedding_model": "text-embedding-3-large",
                },
                "sessions_db": {"healthy": True, "size": 10, "idle": 8, "in_use": 2},
                "context_store": {"initialized": True, "table": "delila_eliza", "documents": 1240},
            }
        }
    )

    status: HealthStatus
    version: str
    models: ModelInfo
    sessions_db: PoolHealth
    context_store: ContextStoreHealth


class ReadinessResponse(BaseModel):
    ready: bool = Field(..., description="Sessions database is reachable")
    error: str | None = None


class LivenessResponse(BaseModel):
    alive: bool = True


__all__ = [
    "ContextStoreHealth",
    "HealthResponse",
    "HealthStatus",
    "LivenessResponse",
    "ModelInfo",
    "PoolHealth",
    "ReadinessResponse",
]
