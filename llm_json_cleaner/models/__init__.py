"""Pydantic models."""

from llm_json_cleaner.models.repair import (
    ChangeModel,
    DiagnoseRequest,
    DiagnosisResponse,
    PipelineRequest,
    RepairRequest,
    RepairResponse,
)

__all__ = [
    "ChangeModel",
    "DiagnoseRequest",
    "DiagnosisResponse",
    "PipelineRequest",
    "RepairRequest",
    "RepairResponse",
]
