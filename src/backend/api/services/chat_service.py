"""
Chat orchestration over server-sent events.

Drives the generation pipeline for one turn and turns its output into SSE
frames. Stage failures become error events and never end the stream early;
every stream ends with a [DONE] frame.
"""

from __future__ import annotations

import json

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from core.constants import (
    CHARACTER_FILE_ERROR_MESSAGE,
    CHARACTER_FILE_PARSE_ERROR_MESSAGE,
    ERROR_TYPE_CHARACTER_FILE,
    ERROR_TYPE_GENERAL,
    ERROR_TYPE_REPLY,
    INIT_SESSION_GREETING,
    REPLY_ERROR_MESSAGE,
    SSE_DONE_FRAME,
)
from core.exceptions import GeneralError, ParsingError
from models.schemas.chat import CharacterFileEvent, ErrorEvent, ReplyEvent, StreamEvent
from utils.logger import logger

if TYPE_CHECKING:
    from api.services.session_service import SessionService
    from core.pipeline import GenerationPipeline, TurnContext


def sse_frame(event: StreamEvent) -> str:
    """Encode one event as an SSE data frame."""
    return f"data: {json.dumps(event.model_dump(by_alias=True, exclude_none=True))}\n\n"


class ChatService:
    """Chat turn orchestration for the SSE endpoint."""

    def __init__(self, sessions: SessionService, pipeline: GenerationPipeline):
        self.sessions = sessions
        self.pipeline = pipeline

    async def init_session(self, initial_message: str | None = None) -> tuple[str, str]:
        """Create a session, store the optional first message and Delila's greeting.

        Returns:
            (session_id, greeting)
        """
        session = await self.sessions.create_session()
        if initial_message:
            await self.sessions.append_message(session.session_id, initial_message, "user")
        await self.sessions.append_message(session.session_id, INIT_SESSION_GREETING, "assistant")
        return session.session_id, INIT_SESSION_GREETING

    async def start_turn(self, session_id: str | None, user_message: str) -> TurnContext:
        """Resolve the session and prepare a turn before any output is sent.

        Raises:
            SessionNotFoundError: If an explicit session id does not exist
        """
        return await self.pipeline.initialize_session(session_id, user_message)

    async def stream_chat(self, turn: TurnContext) -> AsyncIterator[str]:
        """Run both stages of a prepared turn and yield SSE frames."""
        try:
            async for frame in self._reply_frames(turn):
                yield frame
            async for frame in self._document_frames(turn):
                yield frame
            await self.pipeline.commit(turn)
        except Exception as e:
            error = GeneralError(cause=e)
            logger.error(f"Chat stream failed: {e}", exc_info=True, session_id=turn.session_id)
            yield sse_frame(ErrorEvent(content=error.message, error_type=ERROR_TYPE_GENERAL, error=str(e)))

        yield SSE_DONE_FRAME

    async def _reply_frames(self, turn: TurnContext) -> AsyncIterator[str]:
        try:
            async for delta in self.pipeline.generate_reply(turn):
                yield sse_frame(ReplyEvent(content=delta))
        except Exception as e:
            logger.error(f"Reply generation failed: {e}", exc_info=True, session_id=turn.session_id)
            yield sse_frame(ErrorEvent(content=REPLY_ERROR_MESSAGE, error_type=ERROR_TYPE_REPLY))

    async def _document_frames(self, turn: TurnContext) -> AsyncIterator[str]:
        try:
            async for fragment in self.pipeline.generate_character_document(turn):
                yield sse_frame(
                    CharacterFileEvent(content=fragment.content, partial=True if fragment.partial else None)
                )
        except ParsingError as e:
            logger.error(
                f"Character file parsing failed: {e.message}",
                session_id=turn.session_id,
                errors=e.errors,
            )
            yield sse_frame(
                ErrorEvent(
                    content=CHARACTER_FILE_PARSE_ERROR_MESSAGE,
                    error_type=ERROR_TYPE_CHARACTER_FILE,
                    error=e.message,
                )
            )
        except Exception as e:
            logger.error(f"Character file generation failed: {e}", exc_info=True, session_id=turn.session_id)
            yield sse_frame(
                ErrorEvent(
                    content=CHARACTER_FILE_ERROR_MESSAGE,
                    error_type=ERROR_TYPE_CHARACTER_FILE,
                    error=str(e),
                )
            )


__all__ = [
    "ChatService",
    "sse_frame",
]
