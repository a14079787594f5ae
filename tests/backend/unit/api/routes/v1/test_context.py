from unittest.mock import AsyncMock, MagicMock

import pytest

from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.dependencies import get_context_store
from api.middleware.exception_handlers import register_exception_handlers
from api.routes.v1.context import router
from api.services.context_service import Snippet
from core.exceptions import ProviderError
from models.error_models import ErrorCode


@pytest.fixture
def mock_store() -> MagicMock:
    store = MagicMock()
    store.table = "delila_eliza"
    store.add_documents = AsyncMock(return_value=2)
    store.search = AsyncMock(
        return_value=[Snippet(content="clients lists platforms", score=0.87, metadata={"topic": "clients"})]
    )
    return store


@pytest.fixture
def client(mock_store: MagicMock) -> TestClient:
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1")
    app.dependency_overrides[get_context_store] = lambda: mock_store
    return TestClient(app)


def test_add_documents(client: TestClient, mock_store: MagicMock) -> None:
    response = client.post(
        "/api/v1/context/documents",
        json={"texts": ["a", "b", "c"], "metadata": {"source": "eliza-docs"}},
    )

    assert response.status_code == 201
    assert response.json() == {"submitted": 3, "inserted": 2}
    mock_store.add_documents.assert_awaited_once_with(["a", "b", "c"], {"source": "eliza-docs"})


def test_add_documents_requires_texts(client: TestClient) -> None:
    response = client.post("/api/v1/context/documents", json={"texts": []})

    assert response.status_code == 422


def test_search(client: TestClient, mock_store: MagicMock) -> None:
    response = client.post("/api/v1/context/search", json={"query": "twitter clients", "top_k": 5})

    assert response.status_code == 200
    data = response.json()
    assert data["query"] == "twitter clients"
    assert data["results"] == [{"content": "clients lists platforms", "score": 0.87, "metadata": {"topic": "clients"}}]
    mock_store.search.assert_awaited_once_with("twitter clients", 5)


def test_search_default_top_k(client: TestClient, mock_store: MagicMock) -> None:
    client.post("/api/v1/context/search", json={"query": "bio"})

    mock_store.search.assert_awaited_once_with("bio", 3)


def test_search_top_k_bounds(client: TestClient) -> None:
    response = client.post("/api/v1/context/search", json={"query": "bio", "top_k": 0})

    assert response.status_code == 422


def test_search_embedding_failure_is_bad_gateway(client: TestClient, mock_store: MagicMock) -> None:
    mock_store.search.side_effect = ProviderError(
        "openai", "quota exceeded", code=ErrorCode.EMBEDDING_PROVIDER_ERROR
    )

    response = client.post("/api/v1/context/search", json={"query": "bio"})

    assert response.status_code == 502
    assert response.json()["error"]["code"] == ErrorCode.EMBEDDING_PROVIDER_ERROR.value
