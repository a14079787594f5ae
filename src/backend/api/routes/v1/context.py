"""
Context store API routes.

Ingests knowledge snippets and exposes the similarity search the
generation pipeline uses.
"""

from __future__ import annotations

from fastapi import APIRouter, status

from api.dependencies import Context
from models.schemas.context import (
    ContextDocumentsRequest,
    ContextDocumentsResponse,
    ContextSearchRequest,
    ContextSearchResponse,
    ContextSnippetResult,
)
from utils.logger import logger

router = APIRouter(prefix="/context")


@router.post(
    "/documents",
    response_model=ContextDocumentsResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add knowledge snippets",
    description="Embed and store snippets. Snippets already stored (same content) are skipped.",
)
async def add_documents(request: ContextDocumentsRequest, store: Context) -> ContextDocumentsResponse:
    inserted = await store.add_documents(request.texts, request.metadata)
    logger.info(f"Context ingest: {inserted}/{len(request.texts)} snippets stored", table=store.table)
    return ContextDocumentsResponse(submitted=len(request.texts), inserted=inserted)


@router.post(
    "/search",
    response_model=ContextSearchResponse,
    summary="Search context",
    description="Return the snippets closest to the query by cosine similarity.",
)
async def search_context(request: ContextSearchRequest, store: Context) -> ContextSearchResponse:
    snippets = await store.search(request.query, request.top_k)
    return ContextSearchResponse(
        query=request.query,
        results=[ContextSnippetResult(content=s.content, score=s.score, metadata=s.metadata) for s in snippets],
    )
