from collections.abc import Generator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import asyncpg
import pytest

from fastapi.testclient import TestClient

from api.main import app, lifespan
from api.services.chat_service import ChatService
from api.services.session_service import SessionService


@pytest.fixture
def mock_settings() -> Mock:
    # Mock settings to have predictable timeouts
    settings = Mock()
    settings.database_url = "postgres://sessions"
    settings.vector_store_dsn = "postgres://sessions"
    settings.uses_separate_vector_store = False
    settings.vector_store_table = "delila_eliza"
    settings.db_pool_min_size = 1
    settings.db_pool_max_size = 1
    settings.db_command_timeout = 10.0
    settings.db_connection_timeout = 10.0
    settings.db_statement_cache_size = 100
    settings.db_max_inactive_connection_lifetime = 300.0
    settings.document_cache_ttl = 60.0
    settings.context_top_k = 3
    settings.generation_read_timeout = 5.0
    settings.stream_partial_documents = False
    settings.shutdown_timeout = 10.0
    return settings


@pytest.fixture
def startup_mocks(mock_settings: Mock) -> Generator[dict[str, Any], None, None]:
    """Patch every external dependency of the lifespan."""
    with (
        patch("api.main.settings", mock_settings),
        patch("api.main.ProviderHandles") as mock_handles_cls,
        patch("api.main.create_database_pool", new_callable=AsyncMock) as mock_create_db,
        patch("api.main.check_pool_health", new_callable=AsyncMock) as mock_check_health,
        patch("api.main.graceful_pool_close", new_callable=AsyncMock) as mock_close_db,
        patch("api.main.ContextStore") as mock_store_cls,
    ):
        handles = MagicMock()
        handles.aclose = AsyncMock()
        mock_handles_cls.from_settings.return_value = handles

        mock_check_health.return_value = {"healthy": True, "size": 1, "error": None}
        mock_create_db.side_effect = lambda **kwargs: Mock(name=kwargs["label"])

        mock_store_cls.return_value.init = AsyncMock()

        yield {
            "handles": handles,
            "handles_cls": mock_handles_cls,
            "create_db": mock_create_db,
            "check_health": mock_check_health,
            "close_db": mock_close_db,
            "store_cls": mock_store_cls,
        }


@pytest.mark.asyncio
async def test_lifespan_startup_and_shutdown(startup_mocks: dict[str, Any], mock_settings: Mock) -> None:
    """Test successful application startup."""
    mock_app = Mock()
    mock_app.state = Mock()

    async with lifespan(mock_app):
        startup_mocks["handles_cls"].from_settings.assert_called_once_with(mock_settings)
        startup_mocks["create_db"].assert_awaited_once()
        assert startup_mocks["create_db"].await_args.kwargs["label"] == "sessions"
        startup_mocks["check_health"].assert_awaited_once()

        # Verify state assignment
        assert mock_app.state.vector_pool is mock_app.state.db_pool
        store = startup_mocks["store_cls"].return_value
        store.init.assert_awaited_once()
        assert mock_app.state.context_store is store
        startup_mocks["store_cls"].assert_called_once_with(
            mock_app.state.db_pool, startup_mocks["handles"].embeddings, "delila_eliza"
        )
        assert isinstance(mock_app.state.session_service, SessionService)
        assert isinstance(mock_app.state.chat_service, ChatService)
        assert mock_app.state.chat_service.pipeline.top_k == 3

    # Shutdown closes the single pool once and releases provider clients
    startup_mocks["close_db"].assert_awaited_once_with(mock_app.state.db_pool, timeout=10.0)
    startup_mocks["handles"].aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_lifespan_separate_vector_store(startup_mocks: dict[str, Any], mock_settings: Mock) -> None:
    mock_settings.uses_separate_vector_store = True
    mock_settings.vector_store_dsn = "postgres://vectors"
    mock_app = Mock()
    mock_app.state = Mock()

    async with lifespan(mock_app):
        labels = [c.kwargs["label"] for c in startup_mocks["create_db"].await_args_list]
        assert labels == ["sessions", "vectors"]
        assert mock_app.state.vector_pool is not mock_app.state.db_pool

    assert startup_mocks["close_db"].await_count == 2


@pytest.mark.asyncio
async def test_lifespan_startup_db_failure(startup_mocks: dict[str, Any]) -> None:
    """Test startup failure when DB is unhealthy."""
    startup_mocks["check_health"].return_value = {"healthy": False, "size": 0, "error": "connection refused"}
    mock_app = Mock()
    mock_app.state = Mock()

    with pytest.raises(RuntimeError, match="Database connection failed"):
        async with lifespan(mock_app):
            pass

    startup_mocks["store_cls"].assert_not_called()
    startup_mocks["close_db"].assert_awaited_once()
    startup_mocks["handles"].aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_lifespan_context_store_failure_is_not_fatal(startup_mocks: dict[str, Any]) -> None:
    store = startup_mocks["store_cls"].return_value
    store.init.side_effect = asyncpg.UndefinedObjectError('extension "vector" is not available')
    mock_app = Mock()
    mock_app.state = Mock()

    async with lifespan(mock_app):
        assert mock_app.state.context_store is store
        assert isinstance(mock_app.state.chat_service, ChatService)


@pytest.mark.asyncio
async def test_lifespan_cache_disabled_with_zero_ttl(startup_mocks: dict[str, Any], mock_settings: Mock) -> None:
    mock_settings.document_cache_ttl = 0
    mock_app = Mock()
    mock_app.state = Mock()

    async with lifespan(mock_app):
        assert mock_app.state.session_service.document_cache is None


@pytest.mark.asyncio
async def test_lifespan_missing_provider_key_fails_fast(startup_mocks: dict[str, Any]) -> None:
    from core.exceptions import ConfigurationError

    startup_mocks["handles_cls"].from_settings.side_effect = ConfigurationError("API key is required")
    mock_app = Mock()
    mock_app.state = Mock()

    with pytest.raises(ConfigurationError):
        async with lifespan(mock_app):
            pass

    startup_mocks["create_db"].assert_not_awaited()


def test_routes_are_mounted() -> None:
    paths = {route.path for route in app.routes}  # type: ignore[attr-defined]

    assert "/api/v1/eliza/chat" in paths
    assert "/api/v1/eliza/init-session" in paths
    assert "/api/v1/sessions/{session_id}/character" in paths
    assert "/api/v1/context/search" in paths
    assert "/api/v1/health" in paths


def test_cors_exposes_session_header() -> None:
    client = TestClient(app)

    response = client.options(
        "/api/v1/health/live",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"

    response = client.get("/api/v1/health/live", headers={"Origin": "http://localhost:3000"})

    assert "X-Session-ID" in response.headers["access-control-expose-headers"]
