"""Rate limiting using slowapi."""

from fastapi import Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address

from llm_json_cleaner.config import settings


def get_rate_limit_key(request: Request) -> str:
    """Key requests by API key when one is sent, otherwise by client address."""
    api_key = request.headers.get("X-API-Key")
    if not api_key:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            api_key = auth_header[7:]
    return api_key or get_remote_address(request)


limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=[f"{settings.rate_limit_per_hour}/hour"],
    storage_uri="memory://",
)


def get_rate_limit_exceeded_handler():
    """Get rate limit exceeded handler."""
    return _rate_limit_exceeded_handler


def rate_limit_dependency(request: Request) -> None:
    """
    Rate limit dependency for FastAPI.

    Raises:
        RateLimitExceeded: If the caller is over its hourly limit
    """
    # Routes are not decorated, so the default limit is checked by hand
    limiter._check_request_limit(request, endpoint_func=None)
