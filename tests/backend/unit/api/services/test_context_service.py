"""Tests for the pgvector-backed ContextStore."""

from __future__ import annotations

import json

from unittest.mock import AsyncMock, MagicMock

import pytest

from api.services.context_service import ContextStore, Snippet, _embedding_to_pgvector


@pytest.fixture
def embeddings() -> MagicMock:
    service = MagicMock()
    service.dimensions = 3
    service.embed_text = AsyncMock(return_value=[0.1, 0.2, 0.3])
    service.embed_batch = AsyncMock(side_effect=lambda texts: [[float(i)] * 3 for i in range(len(texts))])
    return service


@pytest.fixture
def store(mock_db_pool: MagicMock, embeddings: MagicMock) -> ContextStore:
    return ContextStore(mock_db_pool, embeddings, "delila_eliza")


def test_embedding_to_pgvector() -> None:
    assert _embedding_to_pgvector([0.5, 1.0]) == "[0.5,1.0]"


def test_rejects_unsafe_table_name(mock_db_pool: MagicMock, embeddings: MagicMock) -> None:
    with pytest.raises(ValueError, match="Invalid table name"):
        ContextStore(mock_db_pool, embeddings, "eliza; DROP TABLE sessions")


class TestInit:
    @pytest.mark.asyncio
    async def test_creates_schema_once(self, store: ContextStore, mock_db_conn: AsyncMock) -> None:
        await store.init()
        await store.init()

        statements = [c.args[0] for c in mock_db_conn.execute.call_args_list]
        assert len(statements) == 3
        assert "CREATE EXTENSION IF NOT EXISTS vector" in statements[0]
        assert "vector(3)" in statements[1]
        assert "hnsw" in statements[2]
        assert store.initialized is True

    @pytest.mark.asyncio
    async def test_failure_leaves_store_uninitialized(
        self, store: ContextStore, mock_db_conn: AsyncMock
    ) -> None:
        mock_db_conn.execute.side_effect = RuntimeError("permission denied")

        with pytest.raises(RuntimeError):
            await store.init()

        assert store.initialized is False


class TestSearch:
    @pytest.mark.asyncio
    async def test_returns_snippets_best_first(
        self, store: ContextStore, mock_db_conn: AsyncMock, embeddings: MagicMock
    ) -> None:
        mock_db_conn.fetch.return_value = [
            {"content": "clients lists platforms", "score": 0.91, "metadata": json.dumps({"topic": "clients"})},
            {"content": "bio is a list", "score": 0.72, "metadata": None},
        ]

        results = await store.search("twitter bot", 2)

        assert results == [
            Snippet(content="clients lists platforms", score=0.91, metadata={"topic": "clients"}),
            Snippet(content="bio is a list", score=0.72, metadata={}),
        ]
        embeddings.embed_text.assert_awaited_once_with("twitter bot")
        assert mock_db_conn.fetch.call_args.args[1:] == ("[0.1,0.2,0.3]", 2)

    @pytest.mark.asyncio
    async def test_empty_store(self, store: ContextStore, mock_db_conn: AsyncMock) -> None:
        mock_db_conn.fetch.return_value = []

        assert await store.search("anything", 3) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("k", [0, -1, True, 2.5])
    async def test_invalid_k(self, store: ContextStore, embeddings: MagicMock, k: object) -> None:
        with pytest.raises(ValueError, match="k must be a positive integer"):
            await store.search("query", k)  # type: ignore[arg-type]

        embeddings.embed_text.assert_not_awaited()


class TestAddDocuments:
    @pytest.mark.asyncio
    async def test_inserts_and_counts_new_rows(
        self, store: ContextStore, mock_db_conn: AsyncMock, embeddings: MagicMock
    ) -> None:
        # Second snippet already stored
        mock_db_conn.fetchrow.side_effect = [{"id": 1}, None, {"id": 3}]

        inserted = await store.add_documents(["one", "two", "three"], metadata={"source": "docs"})

        assert inserted == 2
        embeddings.embed_batch.assert_awaited_once_with(["one", "two", "three"])
        first_insert = mock_db_conn.fetchrow.call_args_list[0].args
        assert first_insert[1] == "one"
        assert json.loads(first_insert[3]) == {"source": "docs"}

    @pytest.mark.asyncio
    async def test_skips_blank_texts(
        self, store: ContextStore, mock_db_conn: AsyncMock, embeddings: MagicMock
    ) -> None:
        mock_db_conn.fetchrow.return_value = {"id": 1}

        inserted = await store.add_documents(["", "   ", "style guide"])

        assert inserted == 1
        embeddings.embed_batch.assert_awaited_once_with(["style guide"])

    @pytest.mark.asyncio
    async def test_only_blank_texts_touch_nothing(
        self, store: ContextStore, mock_db_conn: AsyncMock, embeddings: MagicMock
    ) -> None:
        assert await store.add_documents([" "]) == 0

        embeddings.embed_batch.assert_not_awaited()
        mock_db_conn.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_per_text_metadata(self, store: ContextStore, mock_db_conn: AsyncMock) -> None:
        mock_db_conn.fetchrow.return_value = {"id": 1}

        await store.add_documents(["a", "b"], metadata=[{"n": 1}, {"n": 2}])

        metas = [json.loads(c.args[3]) for c in mock_db_conn.fetchrow.call_args_list]
        assert metas == [{"n": 1}, {"n": 2}]

    @pytest.mark.asyncio
    async def test_metadata_length_mismatch(self, store: ContextStore) -> None:
        with pytest.raises(ValueError, match="one entry per text"):
            await store.add_documents(["a", "b"], metadata=[{"n": 1}])

    @pytest.mark.asyncio
    async def test_large_ingest_is_batched(
        self, store: ContextStore, mock_db_conn: AsyncMock, embeddings: MagicMock
    ) -> None:
        mock_db_conn.fetchrow.return_value = {"id": 1}

        inserted = await store.add_documents([f"snippet {i}" for i in range(150)])

        assert inserted == 150
        assert [len(c.args[0]) for c in embeddings.embed_batch.await_args_list] == [100, 50]


@pytest.mark.asyncio
async def test_count(store: ContextStore, mock_db_conn: AsyncMock) -> None:
    mock_db_conn.fetchrow.return_value = {"count": 42}

    assert await store.count() == 42
