"""Request ID propagation for log correlation."""

import re
import uuid
from contextvars import ContextVar
from typing import Optional

_request_id: ContextVar[str] = ContextVar("request_id", default="")

# Upstream IDs are echoed back in headers, so only accept a safe charset
_UPSTREAM_ID = re.compile(r"^[A-Za-z0-9._\-]{8,128}$")


def get_request_id() -> str:
    """Get current request ID from context."""
    return _request_id.get()


def bind_request_id(upstream: Optional[str] = None) -> str:
    """
    Bind a request ID to the current context.

    Reuses an ``X-Request-ID`` supplied by a caller when it looks sane,
    otherwise generates a fresh one.

    Args:
        upstream: Request ID received from the client, if any

    Returns:
        The request ID now bound to the context
    """
    if upstream and _UPSTREAM_ID.match(upstream):
        request_id = upstream
    else:
        request_id = uuid.uuid4().hex
    _request_id.set(request_id)
    return request_id
