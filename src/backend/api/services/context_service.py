"""
Context store backed by a pgvector table.

Holds reference snippets about elizaOS character files and answers
similarity queries for the generation pipeline. The pipeline only reads;
ingestion goes through add_documents().
"""

from __future__ import annotations

import asyncio
import json

from dataclasses import dataclass, field
from typing import Any

import asyncpg

from core.constants import EMBEDDING_BATCH_SIZE, SQL_IDENTIFIER_PATTERN
from integrations.embedding_service import EmbeddingService
from utils.db_utils import with_retry
from utils.logger import logger


def _embedding_to_pgvector(embedding: list[float]) -> str:
    """Convert embedding list to pgvector string format."""
    return "[" + ",".join(str(x) for x in embedding) + "]"


@dataclass
class Snippet:
    """Result from vector similarity search."""

    content: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


class ContextStore:
    """Vector similarity search over reference snippets.

    Handles:
    - Lazy, idempotent creation of the extension, table and HNSW index
    - Snippet ingestion with content-hash deduplication
    - Cosine similarity search, best match first
    """

    def __init__(
        self,
        pool: asyncpg.Pool,
        embeddings: EmbeddingService,
        table: str,
    ) -> None:
        if not SQL_IDENTIFIER_PATTERN.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self.pool = pool
        self.embeddings = embeddings
        self.table = table
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @with_retry(max_attempts=3)
    async def init(self) -> None:
        """Create the vector extension, table and index if they are missing.

        Safe to call concurrently and repeatedly.
        """
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            async with self.pool.acquire() as conn:
                await conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
                await conn.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {self.table} (
                        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                        content TEXT NOT NULL,
                        content_hash TEXT NOT NULL UNIQUE,
                        metadata JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                        embedding vector({self.embeddings.dimensions}) NOT NULL,
                        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
                    )
                    """
                )
                await conn.execute(
                    f"""
                    CREATE INDEX IF NOT EXISTS {self.table}_embedding_idx
                    ON {self.table} USING hnsw (embedding vector_cosine_ops)
                    """
                )
            self._initialized = True
            logger.info(f"Context store ready: {self.table}", table=self.table)

    async def search(self, query: str, k: int) -> list[Snippet]:
        """Return the k snippets closest to the query, best match first.

        Raises:
            ValueError: If k is not a positive integer
            ProviderError: If the query cannot be embedded
        """
        if isinstance(k, bool) or not isinstance(k, int) or k < 1:
            raise ValueError(f"k must be a positive integer, got {k!r}")

        await self.init()
        query_embedding = await self.embeddings.embed_text(query)

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT
                    content,
                    1 - (embedding <=> $1::vector) AS score,
                    metadata
                FROM {self.table}
                ORDER BY embedding <=> $1::vector
                LIMIT $2
                """,
                _embedding_to_pgvector(query_embedding),
                k,
            )

        return [
            Snippet(
                content=row["content"],
                score=float(row["score"]),
                metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            )
            for row in rows
        ]

    async def add_documents(
        self,
        texts: list[str],
        metadata: list[dict[str, Any]] | dict[str, Any] | None = None,
    ) -> int:
        """Embed and store snippets, skipping content already present.

        Args:
            texts: Snippet texts; blank entries are ignored
            metadata: One mapping per text, or a single mapping applied to all

        Returns:
            Number of snippets inserted
        """
        if isinstance(metadata, list) and len(metadata) != len(texts):
            raise ValueError("metadata must have one entry per text")

        items: list[tuple[str, dict[str, Any]]] = []
        for i, text in enumerate(texts):
            if not text or not text.strip():
                continue
            meta = metadata[i] if isinstance(metadata, list) else (metadata or {})
            items.append((text, meta))

        if not items:
            return 0

        await self.init()

        inserted = 0
        for start in range(0, len(items), EMBEDDING_BATCH_SIZE):
            batch = items[start : start + EMBEDDING_BATCH_SIZE]
            vectors = await self.embeddings.embed_batch([text for text, _ in batch])
            async with self.pool.acquire() as conn:
                for (text, meta), vector in zip(batch, vectors, strict=True):
                    row = await conn.fetchrow(
                        f"""
                        INSERT INTO {self.table} (content, content_hash, metadata, embedding)
                        VALUES ($1, $2, $3::jsonb, $4::vector)
                        ON CONFLICT (content_hash) DO NOTHING
                        RETURNING id
                        """,
                        text,
                        EmbeddingService.content_hash(text),
                        json.dumps(meta),
                        _embedding_to_pgvector(vector),
                    )
                    if row:
                        inserted += 1

        logger.info(
            f"Ingested {inserted}/{len(items)} context snippets",
            table=self.table,
            inserted=inserted,
            skipped=len(items) - inserted,
        )
        return inserted

    @with_retry(max_attempts=3)
    async def count(self) -> int:
        """Number of stored snippets."""
        await self.init()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(f"SELECT COUNT(*) AS count FROM {self.table}")
            return int(row["count"]) if row else 0


__all__ = [
    "ContextStore",
    "Snippet",
]
