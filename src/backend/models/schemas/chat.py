"""
Chat API schemas.

Request bodies for the character-building chat and the SSE event payloads
it emits. Wire names are camelCase.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.constants import (
    EVENT_TYPE_CHARACTER_FILE,
    EVENT_TYPE_ERROR,
    EVENT_TYPE_REPLY,
)

# =============================================================================
# Request Models
# =============================================================================


class ChatMessageIn(BaseModel):
    """One message supplied by the client."""

    content: str = Field(..., min_length=1, description="Message text")
    role: Literal["user", "assistant"] = Field(default="user", description="Message author")


class ChatRequest(BaseModel):
    """Request body for a chat turn. The last message is the new user message."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "sessionId": "sess_1a2b3c4d5e6f7a8b",
                "messages": [{"content": "I want a friendly Twitter bot named Nova", "role": "user"}],
            }
        },
    )

    session_id: str | None = Field(
        default=None,
        alias="sessionId",
        description="Existing session id; a new session is created when omitted",
    )
    messages: list[ChatMessageIn] = Field(..., min_length=1, description="Messages; the last one is sent")

    @field_validator("messages")
    @classmethod
    def last_message_from_user(cls, v: list[ChatMessageIn]) -> list[ChatMessageIn]:
        """The last message is stored as the user's turn, so it must come from the user."""
        if v and v[-1].role != "user":
            raise ValueError("the last message must have role 'user'")
        return v

    @property
    def user_message(self) -> str:
        return self.messages[-1].content


class InitSessionRequest(BaseModel):
    """Request body for explicitly starting a session."""

    model_config = ConfigDict(populate_by_name=True)

    initial_message: str | None = Field(
        default=None,
        alias="initialMessage",
        description="Optional first user message stored with the session",
    )


class InitSessionResponse(BaseModel):
    """Response for a newly initialized session."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "sessionId": "sess_1a2b3c4d5e6f7a8b",
                "message": "Hey there! I'm Delila.",
            }
        },
    )

    session_id: str = Field(..., alias="sessionId", description="New session id")
    message: str | None = Field(default=None, description="Greeting from Delila")


# =============================================================================
# SSE Event Models
# =============================================================================


class ReplyEvent(BaseModel):
    type: Literal["reply"] = EVENT_TYPE_REPLY
    content: str


class CharacterFileEvent(BaseModel):
    type: Literal["characterFile"] = EVENT_TYPE_CHARACTER_FILE
    content: dict[str, Any]
    partial: bool | None = None


class ErrorEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["error"] = EVENT_TYPE_ERROR
    content: str
    error_type: Literal["replyError", "characterFileError", "generalError"] = Field(..., alias="errorType")
    error: str | None = None


StreamEvent = ReplyEvent | CharacterFileEvent | ErrorEvent


__all__ = [
    "CharacterFileEvent",
    "ChatMessageIn",
    "ChatRequest",
    "ErrorEvent",
    "InitSessionRequest",
    "InitSessionResponse",
    "ReplyEvent",
    "StreamEvent",
]
