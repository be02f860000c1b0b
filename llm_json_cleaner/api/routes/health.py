"""Health check endpoints."""

from typing import Any, Dict

from fastapi import APIRouter

from llm_json_cleaner.middleware.performance import metrics
from llm_json_cleaner.services.validation import validation_stats

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check() -> Dict[str, str]:
    """Liveness probe."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness_check() -> Dict[str, Any]:
    """Readiness probe. The service holds no external connections, so it is ready once started."""
    return {"status": "ready", "startup": True}


@router.get("/metrics")
async def performance_metrics() -> Dict[str, Any]:
    """
    Get service metrics.

    Returns:
        Request counts, durations and error rates, plus validation stats
    """
    return {
        "status": "ok",
        **metrics.get_summary(),
        "validation": validation_stats.get_stats(),
    }
