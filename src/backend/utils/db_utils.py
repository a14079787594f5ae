"""asyncpg helpers shared by the session store and the context store.

Provides:
- Pool factory (one pool per database, labelled for logs and pg_stat_activity)
- Transaction context manager used for locked appends and turn commits
- Retry decorator for idempotent reads and setup
- Pool health snapshot and bounded shutdown
"""

from __future__ import annotations

import asyncio
import functools
import random

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import asyncpg

from core.exceptions import AppException
from models.error_models import ErrorCode
from utils.logger import logger

P = ParamSpec("P")
T = TypeVar("T")

APPLICATION_NAME = "delila"
HEALTH_CHECK_TIMEOUT = 5.0

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
)


class DatabaseError(AppException):
    """Base exception for database operations."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.DATABASE_ERROR,
        cause: Exception | None = None,
    ):
        super().__init__(code=code, message=message, cause=cause)


class ConnectionPoolExhausted(DatabaseError):
    """A pool could not be opened or no connection was free in time."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message, code=ErrorCode.DATABASE_CONNECTION_FAILED, cause=cause)


async def create_database_pool(
    dsn: str,
    *,
    label: str = "database",
    min_size: int = 2,
    max_size: int = 10,
    command_timeout: float = 60.0,
    connection_timeout: float = 10.0,
    statement_cache_size: int = 100,
    max_inactive_connection_lifetime: float = 300.0,
) -> asyncpg.Pool:
    """Open a pool and wait for its first connections.

    Statement and lock timeouts are applied server side so a stuck query
    cannot outlive ``command_timeout`` even if the client goes away.

    Args:
        dsn: PostgreSQL connection string
        label: "sessions" or "vectors"; shows up in logs and as application_name

    Raises:
        ConnectionPoolExhausted: If the pool is not up within ``connection_timeout``
    """
    timeout_ms = str(int(command_timeout * 1000))
    try:
        pool = await asyncio.wait_for(
            asyncpg.create_pool(
                dsn=dsn,
                min_size=min_size,
                max_size=max_size,
                command_timeout=command_timeout,
                statement_cache_size=statement_cache_size,
                max_inactive_connection_lifetime=max_inactive_connection_lifetime,
                server_settings={
                    "application_name": f"{APPLICATION_NAME}-{label}",
                    "statement_timeout": timeout_ms,
                    "lock_timeout": timeout_ms,
                },
            ),
            timeout=connection_timeout,
        )
    except TimeoutError as e:
        raise ConnectionPoolExhausted(f"{label} pool not ready after {connection_timeout}s", cause=e) from e
    except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        raise ConnectionPoolExhausted(f"Could not open {label} pool: {e}", cause=e) from e

    logger.info(f"Database pool ready: {label}", pool=label, min_size=min_size, max_size=max_size)
    return pool


@asynccontextmanager
async def transaction(
    pool: asyncpg.Pool,
    *,
    timeout: float | None = None,
    isolation: str = "read_committed",
) -> AsyncGenerator[asyncpg.Connection, None]:
    """Check out a connection and run the block in one transaction.

    Example:
        async with transaction(pool) as conn:
            await conn.fetchval("SELECT id FROM sessions WHERE session_id = $1 FOR UPDATE", sid)
            await conn.execute("INSERT INTO messages ...")

    Raises:
        ConnectionPoolExhausted: If no connection is free within ``timeout``
    """
    async with AsyncExitStack() as stack:
        try:
            conn = await stack.enter_async_context(pool.acquire(timeout=timeout))
        except TimeoutError as e:
            raise ConnectionPoolExhausted(f"No database connection free within {timeout}s", cause=e) from e
        await stack.enter_async_context(conn.transaction(isolation=isolation))
        yield conn


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 5.0,
    retryable_exceptions: tuple[type[Exception], ...] = (*TRANSIENT_ERRORS, ConnectionPoolExhausted),
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry an idempotent coroutine on dropped connections.

    Backoff doubles per attempt with up to half a second of jitter. Turn
    commits are never decorated; a retried commit could store a reply twice.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as e:
                    if attempt >= max_attempts:
                        logger.error(f"{func.__name__} failed after {attempt} attempts: {e}", exc_info=True)
                        raise
                    delay = min(base_delay * 2 ** (attempt - 1) + random.uniform(0, 0.5), max_delay)
                    logger.warning(
                        f"{func.__name__} attempt {attempt}/{max_attempts} failed, retry in {delay:.2f}s: {e}"
                    )
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator


async def check_pool_health(pool: asyncpg.Pool) -> dict[str, Any]:
    """Round-trip one query and snapshot the pool counters.

    Never raises; an unreachable database comes back as ``healthy=False``
    with the reason under ``error``.
    """
    error: str | None = None
    try:
        async with pool.acquire(timeout=HEALTH_CHECK_TIMEOUT) as conn:
            healthy = await conn.fetchval("SELECT 1") == 1
    except (OSError, TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        logger.warning(f"Database health check failed: {e}")
        healthy = False
        error = str(e) or type(e).__name__

    size, idle = pool.get_size(), pool.get_idle_size()
    return {
        "healthy": healthy,
        "size": size,
        "idle": idle,
        "in_use": size - idle,
        "min_size": pool.get_min_size(),
        "max_size": pool.get_max_size(),
        "error": error,
    }


async def graceful_pool_close(pool: asyncpg.Pool, timeout: float = 10.0) -> None:
    """Let checked-out connections finish, then close; terminate after ``timeout``."""
    try:
        await asyncio.wait_for(pool.close(), timeout=timeout)
    except TimeoutError:
        logger.warning(
            f"Pool did not close within {timeout}s, terminating "
            f"({pool.get_size() - pool.get_idle_size()} connections in use)"
        )
        pool.terminate()


__all__ = [
    "ConnectionPoolExhausted",
    "DatabaseError",
    "TRANSIENT_ERRORS",
    "check_pool_health",
    "create_database_pool",
    "graceful_pool_close",
    "transaction",
    "with_retry",
]
