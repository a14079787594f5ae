"""
Character-building chat endpoints (v1).

POST /eliza/chat streams the reply and the character file as server-sent
events; POST /eliza/init-session starts a session explicitly.
"""

from __future__ import annotations

from fastapi import APIRouter, status
from fastapi.responses import StreamingResponse

from api.dependencies import Chat
from api.middleware.request_context import SESSION_ID_HEADER, update_request_context
from models.error_models import ErrorResponseWrapper
from models.schemas.chat import ChatRequest, InitSessionRequest, InitSessionResponse
from utils.logger import logger

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post(
    "/chat",
    summary="Chat turn",
    description=(
        "Send the latest user message. The response is an SSE stream of reply deltas, "
        "then the updated character file, then a [DONE] frame. Omit sessionId to start "
        "a new session; the resolved id is returned in the X-Session-ID header."
    ),
    response_class=StreamingResponse,
    responses={
        200: {
            "description": "Event stream",
            "content": {
                "text/event-stream": {
                    "example": (
                        'data: {"type": "reply", "content": "Nova sounds fun!"}\n\n'
                        'data: {"type": "characterFile", "content": {"name": "Nova"}}\n\n'
                        "data: [DONE]\n\n"
                    )
                }
            },
        },
        404: {"model": ErrorResponseWrapper, "description": "Unknown session id"},
        422: {"model": ErrorResponseWrapper, "description": "Invalid request body"},
    },
)
async def chat(request: ChatRequest, chat_service: Chat) -> StreamingResponse:
    """Resolve the session before streaming so an unknown id is a plain 404."""
    turn = await chat_service.start_turn(request.session_id, request.user_message)
    update_request_context(session_id=turn.session_id)
    logger.info(f"Chat turn started for {turn.session_id}", session_id=turn.session_id)

    return StreamingResponse(
        chat_service.stream_chat(turn),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, SESSION_ID_HEADER: turn.session_id},
    )


@router.post(
    "/init-session",
    response_model=InitSessionResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="Start a session",
    description="Create a session, store the optional first message and return Delila's greeting.",
)
async def init_session(request: InitSessionRequest, chat_service: Chat) -> InitSessionResponse:
    session_id, greeting = await chat_service.init_session(request.initial_message)
    update_request_context(session_id=session_id)
    logger.info(f"Session initialized: {session_id}", session_id=session_id)
    return InitSessionResponse(session_id=session_id, message=greeting)
