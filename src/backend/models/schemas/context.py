"""
Context store API schemas.

Ingestion of knowledge snippets and similarity search over them.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from core.constants import DEFAULT_CONTEXT_TOP_K, EMBEDDING_BATCH_SIZE

# =============================================================================
# Request Models
# =============================================================================


class ContextDocumentsRequest(BaseModel):
    """Snippets to embed and store."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "texts": ["The twitter client needs TWITTER_USERNAME, TWITTER_PASSWORD and TWITTER_EMAIL."],
                "metadata": {"source": "eliza-docs"},
            }
        }
    )

    texts: list[str] = Field(..., min_length=1, max_length=EMBEDDING_BATCH_SIZE * 10, description="Snippet texts")
    metadata: dict[str, Any] | None = Field(default=None, description="Metadata applied to every snippet")


class ContextSearchRequest(BaseModel):
    """Request body for context search."""

    query: str = Field(..., min_length=1, max_length=10000, description="Search query")
    top_k: int = Field(default=DEFAULT_CONTEXT_TOP_K, ge=1, le=50, description="Max results to return")


# =============================================================================
# Response Models
# =============================================================================


class ContextDocumentsResponse(BaseModel):
    submitted: int = Field(..., ge=0, description="Snippets received")
    inserted: int = Field(..., ge=0, description="Snippets newly stored (duplicates are skipped)")


class ContextSnippetResult(BaseModel):
    """A single matching snippet."""

    content: str = Field(..., description="Snippet text")
    score: float = Field(..., description="Cosine similarity (higher is closer)")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Stored metadata")


class ContextSearchResponse(BaseModel):
    """Response from context search, best match first."""

    query: str = Field(..., description="Original query")
    results: list[ContextSnippetResult] = Field(..., description="Matching snippets")


__all__ = [
    "ContextDocumentsRequest",
    "ContextDocumentsResponse",
    "ContextSearchRequest",
    "ContextSearchResponse",
    "ContextSnippetResult",
]
