"""
Session inspection endpoints (v1).

Read-only access to a session, its history and its current character file.
Every route resolves the session first, so an unknown id is a 404 with
SES_4001 regardless of which sub-resource was asked for.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query

from api.dependencies import Sessions
from api.services.session_service import Session
from core.constants import MAX_HISTORY_MESSAGES
from core.exceptions import NotFoundError, SessionNotFoundError
from models.error_models import ErrorResponseWrapper
from models.schemas.sessions import (
    CharacterFileResponse,
    MessageListResponse,
    MessageResponse,
    SessionResponse,
)

router = APIRouter()

SessionIdPath = Annotated[
    str,
    Path(description="Public session id", examples=["sess_1a2b3c4d5e6f7a8b"], min_length=1, max_length=100),
]


async def load_session(session_id: SessionIdPath, sessions: Sessions) -> Session:
    session = await sessions.get_session(session_id)
    if session is None:
        raise SessionNotFoundError(session_id)
    return session


KnownSession = Annotated[Session, Depends(load_session)]

NOT_FOUND = {404: {"model": ErrorResponseWrapper, "description": "Unknown session id"}}


@router.get("/{session_id}", response_model=SessionResponse, summary="Get session", responses=NOT_FOUND)
async def get_session(session: KnownSession) -> SessionResponse:
    return SessionResponse.model_validate(session)


@router.get(
    "/{session_id}/messages",
    response_model=MessageListResponse,
    summary="List messages",
    description="Most recent messages of a session in append order.",
    responses=NOT_FOUND,
)
async def list_messages(
    session: KnownSession,
    sessions: Sessions,
    limit: Annotated[int, Query(ge=1, le=MAX_HISTORY_MESSAGES, description="Max messages")] = MAX_HISTORY_MESSAGES,
) -> MessageListResponse:
    messages = await sessions.list_messages(session.session_id, limit=limit)
    return MessageListResponse(
        session_id=session.session_id,
        messages=[MessageResponse.model_validate(m) for m in messages],
        count=len(messages),
    )


@router.get(
    "/{session_id}/character",
    response_model=CharacterFileResponse,
    summary="Get character file",
    description="The session's current character file; 404 with RES_3001 until one has been generated.",
    responses={404: {"model": ErrorResponseWrapper, "description": "Unknown session or no character file yet"}},
)
async def get_character_file(session: KnownSession, sessions: Sessions) -> CharacterFileResponse:
    document = await sessions.get_document(session.session_id)
    if document is None:
        raise NotFoundError("Character file", session.session_id)
    return CharacterFileResponse(
        session_id=session.session_id,
        content=document.content,
        updated_at=document.updated_at,
    )
