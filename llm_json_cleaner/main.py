"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from llm_json_cleaner import __version__
from llm_json_cleaner.api.routes import health, repair
from llm_json_cleaner.config import settings
from llm_json_cleaner.core.request_id import get_request_id
from llm_json_cleaner.middleware.logging import RequestLoggingMiddleware
from llm_json_cleaner.middleware.performance import PerformanceMiddleware
from llm_json_cleaner.middleware.rate_limit import get_rate_limit_exceeded_handler, limiter
from llm_json_cleaner.middleware.security import SecurityHeadersMiddleware, setup_compression, setup_cors
from llm_json_cleaner.utils.exceptions import EmptyInputError, InputTooLargeError, JsonCleanerException
from llm_json_cleaner.utils.logging_config import setup_logging

setup_logging(settings.log_level, settings.log_format)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("LLM JSON Cleaner starting up...")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(f"Rate limit: {settings.rate_limit_per_hour} requests/hour")
    yield
    logger.info("LLM JSON Cleaner shutting down...")


app = FastAPI(
    title="LLM JSON Cleaner",
    description="Recovers valid JSON from raw LLM output",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, get_rate_limit_exceeded_handler())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors with detailed messages."""
    request_id = get_request_id()
    logger.warning(
        f"Validation error: {exc}",
        extra={"request_id": request_id, "path": request.url.path, "errors": exc.errors()},
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation error",
            "detail": jsonable_errors(exc),
            "request_id": request_id,
            "message": "Request validation failed. Check the 'detail' field for specific errors.",
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic may put the raw exception object in "ctx"
    return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]


@app.exception_handler(JsonCleanerException)
async def cleaner_exception_handler(request: Request, exc: JsonCleanerException) -> JSONResponse:
    """Handle JSON cleaner exceptions."""
    request_id = get_request_id()

    if isinstance(exc, EmptyInputError):
        status_code = status.HTTP_400_BAD_REQUEST
        error_message = "Empty input"
    elif isinstance(exc, InputTooLargeError):
        status_code = status.HTTP_400_BAD_REQUEST
        error_message = "Input too large"
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        error_message = "Internal server error"

    if status_code >= 500:
        logger.error(f"Exception: {error_message}", extra={"request_id": request_id, "exception": str(exc)}, exc_info=exc)
    else:
        logger.warning(f"Rejected request: {error_message}", extra={"request_id": request_id, "exception": str(exc)})

    return JSONResponse(
        status_code=status_code,
        content={"error": error_message, "detail": str(exc), "request_id": request_id},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    request_id = get_request_id()
    logger.error(f"Unexpected exception: {exc}", extra={"request_id": request_id}, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred",
            "request_id": request_id,
        },
    )


# Add middleware (order matters!)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(PerformanceMiddleware)
app.add_middleware(RequestLoggingMiddleware)
setup_compression(app)
setup_cors(app)

app.include_router(health.router)
app.include_router(repair.router)


@app.get("/")
async def root():
    """Service info."""
    return {
        "name": "LLM JSON Cleaner",
        "version": __version__,
        "docs": "/docs",
        "endpoints": ["/repair", "/repair/pipeline", "/diagnose", "/health"],
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("llm_json_cleaner.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
