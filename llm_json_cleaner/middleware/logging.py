"""Request/response logging middleware."""

import json
import logging
import time
from typing import Any, Callable, Dict

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from llm_json_cleaner.core.request_id import bind_request_id

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = ("api_key", "password", "token", "secret", "auth")

# Submitted LLM output can be large; only a prefix goes into the log line
TEXT_PREVIEW_CHARS = 200


def mask_sensitive_data(data: Any) -> Any:
    """Recursively mask sensitive fields and shorten long strings."""
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            if any(sensitive in str(key).lower() for sensitive in SENSITIVE_KEYS):
                if isinstance(value, str) and len(value) > 8:
                    masked[key] = f"{value[:8]}..."
                else:
                    masked[key] = "***"
            else:
                masked[key] = mask_sensitive_data(value)
        return masked
    if isinstance(data, list):
        return [mask_sensitive_data(item) for item in data]
    if isinstance(data, str) and len(data) > TEXT_PREVIEW_CHARS:
        return f"{data[:TEXT_PREVIEW_CHARS]}... ({len(data)} chars)"
    return data


async def get_request_params(request: Request) -> Dict[str, Any]:
    """Collect query parameters and the JSON body for logging."""
    params: Dict[str, Any] = {}
    if request.query_params:
        params["query"] = dict(request.query_params)

    content_type = request.headers.get("content-type", "").lower()
    if "application/json" in content_type:
        body = await request.body()
        if body:
            try:
                params["body"] = json.loads(body)
            except (json.JSONDecodeError, UnicodeDecodeError):
                params["body"] = body[:TEXT_PREVIEW_CHARS].decode("utf-8", errors="ignore")
    return params


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Bind a request ID and log every request and response with timing."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = bind_request_id(request.headers.get("X-Request-ID"))
        request.state.request_id = request_id

        start_time = time.perf_counter()
        method = request.method
        path = request.url.path
        params = mask_sensitive_data(await get_request_params(request))

        logger.info(
            f"API Request: {method} {path}",
            extra={
                "request_id": request_id,
                "path": path,
                "params": params,
                "client_ip": request.client.host if request.client else None,
                "user_agent": request.headers.get("user-agent", "Unknown"),
            },
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"API Error: {method} {path} - {e}",
                extra={
                    "request_id": request_id,
                    "path": path,
                    "process_time_ms": round((time.perf_counter() - start_time) * 1000, 2),
                },
                exc_info=True,
            )
            raise

        logger.info(
            f"API Response: {method} {path} - {response.status_code}",
            extra={
                "request_id": request_id,
                "path": path,
                "status_code": response.status_code,
                "process_time_ms": round((time.perf_counter() - start_time) * 1000, 2),
            },
        )
        response.headers["X-Request-ID"] = request_id
        return response
