"""
Generation pipeline for one chat turn.

A turn runs strictly in order: resolve the session and store the user
message, fetch context, stream the conversational reply, stream the
character document, validate it (with at most one repair pass), then
commit. The two stages fail independently; a failed reply does not stop
the document stage.
"""

from __future__ import annotations

import asyncio
import time

from collections.abc import AsyncGenerator, AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import asyncpg

from pydantic import ValidationError
from pydantic_core import from_json

from api.middleware.request_context import update_request_context
from core.character_validation import extract_json, repair_candidate, validate_candidate
from core.exceptions import ParsingError, ProviderError, SessionNotFoundError
from core.prompts import build_document_prompt, build_reply_prompt, format_context, format_history
from models.character_models import CharacterConfig, ReplyPayload, build_placeholder, empty_document
from models.error_models import ErrorCode
from utils.db_utils import DatabaseError
from utils.logger import logger

if TYPE_CHECKING:
    from api.services.context_service import ContextStore, Snippet
    from api.services.session_service import Message, SessionService
    from integrations.llm_provider import LLMClient

# Vector database failures during retrieval; the turn continues without context
VECTOR_STORE_ERRORS: tuple[type[Exception], ...] = (
    DatabaseError,
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
)


class PipelineState(str, Enum):
    INIT = "INIT"
    CONTEXT_FETCHED = "CONTEXT_FETCHED"
    REPLY_STREAMING = "REPLY_STREAMING"
    REPLY_DONE = "REPLY_DONE"
    REPLY_FAILED = "REPLY_FAILED"
    DOCUMENT_STREAMING = "DOCUMENT_STREAMING"
    DOCUMENT_VALIDATING = "DOCUMENT_VALIDATING"
    DOCUMENT_REPAIRING = "DOCUMENT_REPAIRING"
    DOCUMENT_DONE = "DOCUMENT_DONE"
    DOCUMENT_FAILED = "DOCUMENT_FAILED"
    COMMITTED = "COMMITTED"


_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.INIT: frozenset({PipelineState.CONTEXT_FETCHED}),
    PipelineState.CONTEXT_FETCHED: frozenset({PipelineState.REPLY_STREAMING}),
    PipelineState.REPLY_STREAMING: frozenset({PipelineState.REPLY_DONE, PipelineState.REPLY_FAILED}),
    PipelineState.REPLY_DONE: frozenset({PipelineState.DOCUMENT_STREAMING}),
    PipelineState.REPLY_FAILED: frozenset({PipelineState.DOCUMENT_STREAMING}),
    PipelineState.DOCUMENT_STREAMING: frozenset({PipelineState.DOCUMENT_VALIDATING, PipelineState.DOCUMENT_FAILED}),
    PipelineState.DOCUMENT_VALIDATING: frozenset(
        {PipelineState.DOCUMENT_REPAIRING, PipelineState.DOCUMENT_DONE, PipelineState.DOCUMENT_FAILED}
    ),
    PipelineState.DOCUMENT_REPAIRING: frozenset({PipelineState.DOCUMENT_DONE, PipelineState.DOCUMENT_FAILED}),
    PipelineState.DOCUMENT_DONE: frozenset({PipelineState.COMMITTED}),
    PipelineState.DOCUMENT_FAILED: frozenset({PipelineState.COMMITTED}),
    PipelineState.COMMITTED: frozenset(),
}


@dataclass
class DocumentFragment:
    """A character document emitted by the document stage.

    ``partial`` snapshots are incomplete objects; the final fragment is validated.
    """

    content: dict[str, Any]
    partial: bool = False


@dataclass
class TurnContext:
    """Everything one chat turn reads and produces."""

    session_id: str
    user_message: str
    history: list[Message] = field(default_factory=list)
    context: list[Snippet] = field(default_factory=list)
    document: dict[str, Any] = field(default_factory=empty_document)
    state: PipelineState = PipelineState.INIT
    reply: str | None = None
    final_document: CharacterConfig | None = None
    repaired: bool = False
    placeholder: bool = False
    started_at: float = field(default_factory=time.monotonic)

    def advance(self, state: PipelineState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid pipeline transition {self.state.value} -> {state.value}")
        logger.log_pipeline_stage(state.value, duration_ms=self.elapsed_ms, session_id=self.session_id)
        self.state = state
        update_request_context(stage=state.value)

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000

    @property
    def history_text(self) -> str:
        return format_history(self.history)

    @property
    def conversation(self) -> str:
        """User-authored text of the session, used for platform detection."""
        return "\n".join(m.content for m in self.history if m.role == "user")


def _strip_fence_prefix(buffer: str) -> str:
    text = buffer.lstrip()
    if text.startswith("```"):
        newline = text.find("\n")
        return "" if newline == -1 else text[newline + 1 :]
    return text


def _parse_partial(buffer: str) -> Any | None:
    """Best-effort parse of an incomplete JSON document; None if not parseable yet."""
    text = _strip_fence_prefix(buffer)
    if not text:
        return None
    try:
        return from_json(text, allow_partial="trailing-strings")
    except ValueError:
        return None


def _carries_no_persona(raw: str, data: Any) -> bool:
    if not raw.strip():
        return True
    if not isinstance(data, dict):
        return False
    name = data.get("name")
    return not (isinstance(name, str) and name.strip()) and not data.get("bio") and not data.get("lore")


class GenerationPipeline:
    """Runs the stages of a chat turn against shared provider handles."""

    def __init__(
        self,
        sessions: SessionService,
        context_store: ContextStore,
        llm: LLMClient,
        repair_llm: LLMClient | None = None,
        *,
        top_k: int = 3,
        read_timeout: float | None = None,
        stream_partial_documents: bool = False,
    ) -> None:
        self.sessions = sessions
        self.context_store = context_store
        self.llm = llm
        self.repair_llm = repair_llm or llm
        self.top_k = top_k
        self.read_timeout = read_timeout if read_timeout is not None else llm.read_timeout
        self.stream_partial_documents = stream_partial_documents

    async def initialize_session(self, session_id: str | None, user_message: str) -> TurnContext:
        """Resolve the session, store the user message and gather inputs. No generation.

        Raises:
            SessionNotFoundError: If an explicit session id does not exist
        """
        if session_id is None:
            session = await self.sessions.create_session()
        else:
            existing = await self.sessions.get_session(session_id)
            if existing is None:
                raise SessionNotFoundError(session_id)
            session = existing

        turn = TurnContext(session_id=session.session_id, user_message=user_message)
        await self.sessions.append_message(turn.session_id, user_message, "user")
        turn.history = await self.sessions.list_messages(turn.session_id)
        turn.context = await self._fetch_context(user_message)

        stored = await self.sessions.get_document(turn.session_id)
        if stored is not None:
            turn.document = stored.content

        turn.advance(PipelineState.CONTEXT_FETCHED)
        return turn

    async def _fetch_context(self, query: str) -> list[Snippet]:
        try:
            return await self.context_store.search(query, self.top_k)
        except ProviderError as e:
            # Retrieval failures degrade to an empty context
            logger.warning(f"Context search unavailable: {e}", provider=e.provider)
        except VECTOR_STORE_ERRORS as e:
            logger.warning(f"Context store unreachable: {e}", table=self.context_store.table)
        return []

    async def _stream(self, llm: LLMClient, prompt: str) -> AsyncGenerator[str, None]:
        """Provider stream where every read is bounded by the read timeout."""
        stream = llm.stream(prompt)
        try:
            while True:
                try:
                    async with asyncio.timeout(self.read_timeout):
                        chunk = await anext(stream)
                except StopAsyncIteration:
                    return
                except TimeoutError as e:
                    raise ProviderError(
                        llm.provider.value,
                        f"no output within {self.read_timeout}s",
                        code=ErrorCode.EXTERNAL_TIMEOUT,
                        cause=e,
                    ) from e
                yield chunk
        finally:
            await stream.aclose()

    async def generate_reply(self, turn: TurnContext) -> AsyncIterator[str]:
        """Stream the conversational reply as text deltas.

        Raises:
            ProviderError: If the provider fails or stalls
            ParsingError: If the completed output is not a {"reply": str} object
        """
        turn.advance(PipelineState.REPLY_STREAMING)
        prompt = build_reply_prompt(turn.history_text, format_context(turn.context), turn.document)

        buffer = ""
        emitted = ""
        try:
            async for chunk in self._stream(self.llm, prompt):
                buffer += chunk
                partial = _parse_partial(buffer)
                text = partial.get("reply") if isinstance(partial, dict) else None
                if isinstance(text, str) and len(text) > len(emitted) and text.startswith(emitted):
                    yield text[len(emitted) :]
                    emitted = text

            try:
                payload = ReplyPayload.model_validate(extract_json(buffer))
            except ValidationError as e:
                raise ParsingError("Reply is not a valid {reply: string} object", raw_output=buffer, cause=e) from e

            if payload.reply.startswith(emitted) and len(payload.reply) > len(emitted):
                yield payload.reply[len(emitted) :]
            turn.reply = payload.reply
            turn.advance(PipelineState.REPLY_DONE)
        except Exception:
            turn.advance(PipelineState.REPLY_FAILED)
            raise

    async def generate_character_document(self, turn: TurnContext) -> AsyncIterator[DocumentFragment]:
        """Stream the character document; the last fragment is the validated document.

        Raises:
            ProviderError: If the provider fails or stalls
            ParsingError: If the document is invalid after one repair pass
        """
        turn.advance(PipelineState.DOCUMENT_STREAMING)
        prompt = build_document_prompt(turn.history_text, format_context(turn.context), turn.document)

        buffer = ""
        keys_seen = 0
        try:
            async for chunk in self._stream(self.llm, prompt):
                buffer += chunk
                if not self.stream_partial_documents:
                    continue
                snapshot = _parse_partial(buffer)
                if isinstance(snapshot, dict) and len(snapshot) > keys_seen:
                    keys_seen = len(snapshot)
                    yield DocumentFragment(content=snapshot, partial=True)

            turn.advance(PipelineState.DOCUMENT_VALIDATING)
            document = await self._finalize_document(turn, buffer)
            turn.final_document = document
            turn.advance(PipelineState.DOCUMENT_DONE)
        except Exception:
            turn.advance(PipelineState.DOCUMENT_FAILED)
            raise

        yield DocumentFragment(content=document.to_document(), partial=False)

    async def _finalize_document(self, turn: TurnContext, raw: str) -> CharacterConfig:
        data = extract_json(raw)
        if _carries_no_persona(raw, data):
            turn.placeholder = True
            return build_placeholder(turn.document)

        result = validate_candidate(data if data is not None else raw, turn.conversation)
        if result.ok and result.document is not None:
            return result.document

        logger.warning(
            f"Character file failed validation: {len(result.errors)} errors",
            stage=PipelineState.DOCUMENT_VALIDATING.value,
            errors=result.errors,
        )
        turn.advance(PipelineState.DOCUMENT_REPAIRING)
        turn.repaired = True
        return await repair_candidate(
            self.repair_llm,
            raw,
            result.errors,
            turn.conversation,
            timeout=self.read_timeout,
        )

    async def commit(self, turn: TurnContext) -> None:
        """Persist whatever the turn produced and close it."""
        document = turn.final_document.to_document() if turn.final_document is not None else None
        await self.sessions.commit_turn(turn.session_id, turn.reply, document)
        turn.advance(PipelineState.COMMITTED)

        logger.log_conversation_turn(
            session_id=turn.session_id,
            user_input=turn.user_message,
            reply=turn.reply or "",
            document_chars=len(str(document)) if document else 0,
            repaired=turn.repaired,
            placeholder=turn.placeholder,
            duration_ms=turn.elapsed_ms,
            provider=self.llm.provider.value,
        )


__all__ = [
    "DocumentFragment",
    "GenerationPipeline",
    "PipelineState",
    "TurnContext",
]
