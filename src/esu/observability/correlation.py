"""Correlation ID management for request tracing."""

import uuid
from contextvars import ContextVar, Token

from starlette.requests import Request
from starlette.responses import Response

# Context variable for correlation ID - accessible across async calls
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

CORRELATION_ID_HEADER = "X-Correlation-ID"


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    """Get current correlation ID from context."""
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> Token[str]:
    """Set correlation ID in context."""
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    """Reset correlation ID to previous value."""
    correlation_id_var.reset(token)


async def correlation_id_middleware(request: Request, call_next) -> Response:
    """HTTP middleware: bind the request's correlation ID for its lifetime.

    Reuses the incoming X-Correlation-ID header when present and echoes the
    ID back on the response.
    """
    cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
    token = set_correlation_id(cid)
    try:
        response = await call_next(request)
        response.headers[CORRELATION_ID_HEADER] = cid
        return response
    finally:
        reset_correlation_id(token)
