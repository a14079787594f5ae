"""
Session store backed by PostgreSQL.

Owns sessions, their append-only message history and the single character
document per session. Every write locks the session row first, so writes
for one session are serialized while different sessions never contend.
"""

from __future__ import annotations

import json
import secrets

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

import asyncpg

from core.constants import MAX_HISTORY_MESSAGES, SESSION_ID_PREFIX
from core.exceptions import SessionNotFoundError
from utils.cache import DocumentCache
from utils.db_utils import transaction, with_retry
from utils.logger import logger

Role = Literal["user", "assistant"]
ROLES: tuple[str, ...] = ("user", "assistant")


@dataclass(frozen=True)
class Session:
    id: UUID
    session_id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class Message:
    session_id: str
    seq: int
    role: str
    content: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "seq": self.seq,
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class CharacterDocument:
    session_id: str
    content: dict[str, Any] = field(default_factory=dict)
    version: int = 0
    updated_at: datetime | None = None


def _row_to_session(row: asyncpg.Record) -> Session:
    return Session(
        id=row["id"],
        session_id=row["session_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_message(session_id: str, row: asyncpg.Record) -> Message:
    return Message(
        session_id=session_id,
        seq=row["seq"],
        role=row["role"],
        content=row["content"],
        created_at=row["created_at"],
    )


def _row_to_document(session_id: str, row: asyncpg.Record) -> CharacterDocument:
    content = row["content"]
    if isinstance(content, str):
        content = json.loads(content)
    return CharacterDocument(
        session_id=session_id,
        content=content,
        version=row["version"],
        updated_at=row["updated_at"],
    )


class SessionService:
    """Session, message and character document persistence.

    Character documents are cached in front of the database (read-through,
    write-through). The database stays the source of truth: every upsert bumps
    the row version under the session lock, and the cache refuses a version
    older than the one it holds, so a late cache write never hides a newer
    commit.
    """

    def __init__(self, pool: asyncpg.Pool, document_cache: DocumentCache[CharacterDocument] | None = None):
        self.pool = pool
        self.document_cache = document_cache

    def _generate_session_id(self) -> str:
        """Generate unique public session ID."""
        return f"{SESSION_ID_PREFIX}{secrets.token_hex(8)}"

    async def create_session(self) -> Session:
        """Create a new, empty session."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO sessions (session_id)
                VALUES ($1)
                RETURNING id, session_id, created_at, updated_at
                """,
                self._generate_session_id(),
            )
        session = _row_to_session(row)
        logger.info(f"Session created: {session.session_id}", session_id=session.session_id)
        return session

    @with_retry(max_attempts=3)
    async def get_session(self, session_id: str) -> Session | None:
        """Get session by public ID."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT id, session_id, created_at, updated_at
                FROM sessions
                WHERE session_id = $1
                """,
                session_id,
            )
        return _row_to_session(row) if row else None

    async def _lock_session(self, conn: asyncpg.Connection, session_id: str) -> UUID:
        """Lock the session row for the rest of the transaction and return its internal ID."""
        session_uuid = await conn.fetchval(
            "SELECT id FROM sessions WHERE session_id = $1 FOR UPDATE",
            session_id,
        )
        if session_uuid is None:
            raise SessionNotFoundError(session_id)
        return session_uuid  # type: ignore[no-any-return]

    async def _insert_message(
        self,
        conn: asyncpg.Connection,
        session_uuid: UUID,
        session_id: str,
        content: str,
        role: str,
    ) -> Message:
        row = await conn.fetchrow(
            """
            INSERT INTO messages (session_id, seq, role, content)
            VALUES (
                $1,
                (SELECT COALESCE(MAX(seq), 0) + 1 FROM messages WHERE session_id = $1),
                $2,
                $3
            )
            RETURNING seq, role, content, created_at
            """,
            session_uuid,
            role,
            content,
        )
        await conn.execute("UPDATE sessions SET updated_at = now() WHERE id = $1", session_uuid)
        return _row_to_message(session_id, row)

    async def _upsert_document(
        self,
        conn: asyncpg.Connection,
        session_uuid: UUID,
        session_id: str,
        content: dict[str, Any],
    ) -> CharacterDocument:
        row = await conn.fetchrow(
            """
            INSERT INTO character_documents (session_id, content)
            VALUES ($1, $2::jsonb)
            ON CONFLICT (session_id) DO UPDATE SET
                content = EXCLUDED.content,
                version = character_documents.version + 1,
                updated_at = now()
            RETURNING content, version, updated_at
            """,
            session_uuid,
            json.dumps(content),
        )
        await conn.execute("UPDATE sessions SET updated_at = now() WHERE id = $1", session_uuid)
        return _row_to_document(session_id, row)

    async def append_message(self, session_id: str, content: str, role: Role) -> Message:
        """Append a message to the end of a session's history.

        Raises:
            SessionNotFoundError: If the session does not exist
            ValueError: If role is not 'user' or 'assistant'
        """
        if role not in ROLES:
            raise ValueError(f"Invalid role: {role!r}")

        async with transaction(self.pool) as conn:
            session_uuid = await self._lock_session(conn, session_id)
            return await self._insert_message(conn, session_uuid, session_id, content, role)

    @with_retry(max_attempts=3)
    async def list_messages(self, session_id: str, limit: int = MAX_HISTORY_MESSAGES) -> list[Message]:
        """Messages of a session in insertion order.

        Returns the most recent ``limit`` messages, oldest first.
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT seq, role, content, created_at FROM (
                    SELECT m.seq, m.role, m.content, m.created_at
                    FROM messages m
                    JOIN sessions s ON s.id = m.session_id
                    WHERE s.session_id = $1
                    ORDER BY m.seq DESC
                    LIMIT $2
                ) recent
                ORDER BY seq ASC
                """,
                session_id,
                limit,
            )
        return [_row_to_message(session_id, r) for r in rows]

    async def get_document(self, session_id: str) -> CharacterDocument | None:
        """Current character document of a session, if any."""
        if self.document_cache is not None:
            cached = await self.document_cache.get(session_id)
            if cached is not None:
                return cached

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT d.content, d.version, d.updated_at
                FROM character_documents d
                JOIN sessions s ON s.id = d.session_id
                WHERE s.session_id = $1
                """,
                session_id,
            )
        if not row:
            return None

        document = _row_to_document(session_id, row)
        if self.document_cache is not None:
            await self.document_cache.put(session_id, document, version=document.version)
        return document

    async def put_document(self, session_id: str, content: dict[str, Any]) -> CharacterDocument:
        """Replace the session's character document.

        Raises:
            SessionNotFoundError: If the session does not exist
        """
        async with transaction(self.pool) as conn:
            session_uuid = await self._lock_session(conn, session_id)
            document = await self._upsert_document(conn, session_uuid, session_id, content)

        if self.document_cache is not None:
            await self.document_cache.put(session_id, document, version=document.version)
        return document

    async def commit_turn(
        self,
        session_id: str,
        reply: str | None,
        document: dict[str, Any] | None,
    ) -> tuple[Message | None, CharacterDocument | None]:
        """Persist the outputs of one chat turn in a single transaction.

        Either output may be None when its stage failed; nothing is written for it.
        """
        if reply is None and document is None:
            return None, None

        message = None
        stored = None
        async with transaction(self.pool) as conn:
            session_uuid = await self._lock_session(conn, session_id)
            if reply is not None:
                message = await self._insert_message(conn, session_uuid, session_id, reply, "assistant")
            if document is not None:
                stored = await self._upsert_document(conn, session_uuid, session_id, document)

        if stored is not None and self.document_cache is not None:
            await self.document_cache.put(session_id, stored, version=stored.version)
        return message, stored


__all__ = [
    "CharacterDocument",
    "Message",
    "Session",
    "SessionService",
]
