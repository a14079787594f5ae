"""
Request-scoped context for the Delila API.

Each request gets an id, a start time and, once known, the session it belongs
to and the pipeline stage it has reached. The logger reads this context so
every line emitted while serving a request carries the same correlation fields.

The session id comes from the ``X-Session-ID`` header or a
``/sessions/{session_id}`` path. The chat endpoint carries its id in the body
and binds the resolved id through update_request_context().
"""

from __future__ import annotations

import re
import secrets
import time

from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_PREFIX = "req_"
REQUEST_ID_HEADER = "X-Request-ID"
SESSION_ID_HEADER = "X-Session-ID"
RESPONSE_TIME_HEADER = "X-Response-Time"

_SESSION_PATH = re.compile(r"/sessions/(?P<session_id>[^/]+)")

_current: ContextVar[RequestContext | None] = ContextVar("delila_request_context", default=None)


@dataclass
class RequestContext:
    """Correlation fields for one HTTP request."""

    request_id: str
    method: str = ""
    path: str = ""
    client_ip: str | None = None
    session_id: str | None = None
    stage: str | None = None
    started: float = field(default_factory=time.monotonic)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started) * 1000

    def to_log_context(self) -> dict[str, Any]:
        """Fields merged into every log record written during the request."""
        ctx: dict[str, Any] = {
            "request_id": self.request_id,
            "method": self.method,
            "path": self.path,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }
        for name in ("client_ip", "session_id", "stage"):
            value = getattr(self, name)
            if value:
                ctx[name] = value
        return ctx


def generate_request_id(prefix: str = REQUEST_ID_PREFIX) -> str:
    """Return ``prefix`` followed by 16 hex characters, e.g. ``req_a1b2c3d4e5f6a7b8``."""
    return f"{prefix}{secrets.token_hex(8)}"


def get_request_context() -> RequestContext | None:
    """Context of the request being served, or None outside a request."""
    return _current.get()


def get_request_id() -> str | None:
    ctx = _current.get()
    return ctx.request_id if ctx else None


def bind_request_context(context: RequestContext) -> Token[RequestContext | None]:
    """Make ``context`` current; pass the returned token to reset_request_context()."""
    return _current.set(context)


def reset_request_context(token: Token[RequestContext | None]) -> None:
    _current.reset(token)


def update_request_context(**kwargs: Any) -> None:
    """Set known fields on the current context; anything else lands in ``extra``.

    Does nothing outside a request, so services can call it unconditionally:
        update_request_context(session_id="sess_456", stage="REPLY_STREAMING")
    """
    ctx = _current.get()
    if ctx is None:
        return
    for key, value in kwargs.items():
        if key in RequestContext.__dataclass_fields__ and key not in ("request_id", "started", "extra"):
            setattr(ctx, key, value)
        else:
            ctx.extra[key] = value


def session_id_for(request: Request) -> str | None:
    """Session id named by the request header or path, if any."""
    if header := request.headers.get(SESSION_ID_HEADER):
        return header.strip() or None
    match = _SESSION_PATH.search(request.url.path)
    return match.group("session_id") if match else None


def client_ip_for(request: Request) -> str | None:
    """First hop of X-Forwarded-For when proxied, otherwise the peer address."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a RequestContext for each request and echo its id back."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        context = RequestContext(
            request_id=request.headers.get(REQUEST_ID_HEADER) or generate_request_id(),
            method=request.method,
            path=request.url.path,
            client_ip=client_ip_for(request),
            session_id=session_id_for(request),
        )
        token = bind_request_context(context)
        try:
            response = await call_next(request)
        finally:
            reset_request_context(token)

        # For SSE this is time to first byte
        response.headers[REQUEST_ID_HEADER] = context.request_id
        response.headers[RESPONSE_TIME_HEADER] = f"{context.elapsed_ms:.2f}ms"
        return response


__all__ = [
    "REQUEST_ID_HEADER",
    "REQUEST_ID_PREFIX",
    "RESPONSE_TIME_HEADER",
    "SESSION_ID_HEADER",
    "RequestContext",
    "RequestContextMiddleware",
    "bind_request_context",
    "client_ip_for",
    "generate_request_id",
    "get_request_context",
    "get_request_id",
    "reset_request_context",
    "session_id_for",
    "update_request_context",
]
