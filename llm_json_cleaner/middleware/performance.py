"""Request timing and service-wide performance counters."""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from llm_json_cleaner.config import settings
from llm_json_cleaner.core.request_id import get_request_id

logger = logging.getLogger(__name__)


class PerformanceMetrics:
    """Counters for every request the service has answered."""

    def __init__(self, slow_threshold: Optional[float] = None, very_slow_threshold: Optional[float] = None):
        self.slow_threshold = slow_threshold or settings.slow_request_threshold
        self.very_slow_threshold = very_slow_threshold or settings.very_slow_request_threshold
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self.request_count = 0
            self.total_duration = 0.0
            self.slow_requests = 0
            self.very_slow_requests = 0
            self.errors = 0

    def record_request(self, duration: float, is_error: bool = False) -> None:
        """
        Record one finished request.

        Args:
            duration: Request duration in seconds
            is_error: Whether the request ended in a server error
        """
        with self._lock:
            self.request_count += 1
            self.total_duration += duration
            if is_error:
                self.errors += 1
            if duration >= self.very_slow_threshold:
                self.very_slow_requests += 1
            elif duration >= self.slow_threshold:
                self.slow_requests += 1

    def _percent(self, count: int) -> float:
        if self.request_count == 0:
            return 0.0
        return count / self.request_count * 100

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            average_ms = self.total_duration / self.request_count * 1000 if self.request_count else 0.0
            return {
                "total_requests": self.request_count,
                "average_duration_ms": round(average_ms, 2),
                "slow_requests": self.slow_requests,
                "very_slow_requests": self.very_slow_requests,
                "slow_request_percentage": round(self._percent(self.slow_requests), 2),
                "errors": self.errors,
                "error_rate": round(self._percent(self.errors), 2),
            }


# Global metrics instance
metrics = PerformanceMetrics()


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Time each request, flag slow ones and feed the global metrics."""

    def __init__(
        self,
        app: ASGIApp,
        slow_request_threshold: Optional[float] = None,
        very_slow_request_threshold: Optional[float] = None,
        tracker: Optional[PerformanceMetrics] = None,
    ):
        super().__init__(app)
        self.slow_threshold = slow_request_threshold or settings.slow_request_threshold
        self.very_slow_threshold = very_slow_request_threshold or settings.very_slow_request_threshold
        self.tracker = tracker or metrics

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        method = request.method
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            self.tracker.record_request(duration, is_error=True)
            logger.error(
                f"Request failed: {method} {path}",
                extra={
                    "request_id": get_request_id(),
                    "path": path,
                    "duration_ms": round(duration * 1000, 2),
                    "error": str(e),
                },
                exc_info=True,
            )
            raise

        duration = time.perf_counter() - start_time
        duration_ms = round(duration * 1000, 2)
        self.tracker.record_request(duration, is_error=response.status_code >= 500)
        response.headers["X-Response-Time"] = f"{duration_ms}ms"

        log_data = {
            "request_id": get_request_id(),
            "path": path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        }
        if duration >= self.very_slow_threshold:
            logger.error(f"VERY SLOW REQUEST: {method} {path} took {duration_ms}ms", extra=log_data)
        elif duration >= self.slow_threshold:
            logger.warning(f"Slow request: {method} {path} took {duration_ms}ms", extra=log_data)
        else:
            logger.debug(f"Request timed: {method} {path}", extra=log_data)

        return response
