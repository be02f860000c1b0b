"""JSON repair endpoints."""

import dataclasses
import logging

from fastapi import APIRouter, Depends

from llm_json_cleaner.api.dependencies import get_cleaner
from llm_json_cleaner.config import settings
from llm_json_cleaner.core.request_id import get_request_id
from llm_json_cleaner.middleware.rate_limit import rate_limit_dependency
from llm_json_cleaner.models.repair import (
    DiagnoseRequest,
    DiagnosisResponse,
    PipelineRequest,
    RepairRequest,
    RepairResponse,
)
from llm_json_cleaner.services.cleaner import JsonCleaner, RepairOptions, RepairResult
from llm_json_cleaner.utils.exceptions import InputTooLargeError

logger = logging.getLogger(__name__)
router = APIRouter(tags=["repair"])


def _check_size(text: str) -> None:
    if len(text) > settings.max_input_chars:
        raise InputTooLargeError(
            f"Input has {len(text)} characters, the limit is {settings.max_input_chars}"
        )


def _to_response(result: RepairResult) -> RepairResponse:
    return RepairResponse(
        cleaned_json=result.cleaned_json,
        reasoning=result.reasoning,
        success=result.success,
        confidence=result.confidence,
        mode=result.mode,
        changes=[dataclasses.asdict(change) for change in result.changes],
        request_id=get_request_id() or None,
    )


@router.post("/repair", response_model=RepairResponse)
async def repair(
    body: RepairRequest,
    _: None = Depends(rate_limit_dependency),
    cleaner: JsonCleaner = Depends(get_cleaner),
) -> RepairResponse:
    """
    Repair raw LLM output.

    Extracts reasoning and markdown wrappers, then runs a recipe and falls
    back to the fixed pipeline when the recipe does not produce valid JSON.
    """
    _check_size(body.text)
    options = RepairOptions(
        extract_reasoning=body.extract_reasoning,
        extract_markdown=body.extract_markdown,
        validate=body.validate_output,
        clean=body.clean,
        mode=body.mode,
    )
    result = await cleaner.repair_async(body.text, options)
    logger.info(
        f"Repair finished: success={result.success}",
        extra={"request_id": get_request_id(), "mode": result.mode, "change_count": len(result.changes)},
    )
    return _to_response(result)


@router.post("/repair/pipeline", response_model=RepairResponse)
def repair_pipeline(
    body: PipelineRequest,
    _: None = Depends(rate_limit_dependency),
    cleaner: JsonCleaner = Depends(get_cleaner),
) -> RepairResponse:
    """Repair with the synchronous fixed pipeline only."""
    _check_size(body.text)
    return _to_response(cleaner.repair(body.text))


@router.post("/diagnose", response_model=DiagnosisResponse)
def diagnose(
    body: DiagnoseRequest,
    _: None = Depends(rate_limit_dependency),
    cleaner: JsonCleaner = Depends(get_cleaner),
) -> DiagnosisResponse:
    """Describe what is wrong with a text without modifying it."""
    _check_size(body.text)
    diagnosis = cleaner.diagnose(body.text)
    return DiagnosisResponse(**diagnosis.to_dict(), request_id=get_request_id() or None)
