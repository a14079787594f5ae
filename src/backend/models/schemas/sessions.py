"""
Session-related API schemas.

Read-only views of a session, its message history and its current
character file.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Response Models
# =============================================================================


class SessionResponse(BaseModel):
    """Chat session metadata."""

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "session_id": "sess_1a2b3c4d5e6f7a8b",
                "created_at": "2026-01-01T12:00:00Z",
                "updated_at": "2026-01-01T12:05:00Z",
            }
        },
    )

    session_id: str = Field(..., description="Session identifier")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last write timestamp")


class MessageResponse(BaseModel):
    """A single stored message."""

    model_config = ConfigDict(from_attributes=True)

    seq: int = Field(..., ge=1, description="Position within the session")
    role: Literal["user", "assistant"] = Field(..., description="Message author")
    content: str = Field(..., description="Message text")
    created_at: datetime = Field(..., description="Creation timestamp")


class MessageListResponse(BaseModel):
    """Message history of a session, oldest first."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "session_id": "sess_1a2b3c4d5e6f7a8b",
                "messages": [
                    {
                        "seq": 1,
                        "role": "user",
                        "content": "I want a friendly Twitter bot named Nova",
                        "created_at": "2026-01-01T12:00:00Z",
                    }
                ],
                "count": 1,
            }
        }
    )

    session_id: str = Field(..., description="Session identifier")
    messages: list[MessageResponse] = Field(default_factory=list, description="Messages in append order")
    count: int = Field(..., ge=0, description="Number of messages returned")


class CharacterFileResponse(BaseModel):
    """The session's current character file."""

    session_id: str = Field(..., description="Session identifier")
    content: dict[str, Any] = Field(..., description="Character file (camelCase keys)")
    updated_at: datetime | None = Field(default=None, description="Last replacement timestamp")


__all__ = [
    "CharacterFileResponse",
    "MessageListResponse",
    "MessageResponse",
    "SessionResponse",
]
