"""Repair API Pydantic models."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class RepairRequest(BaseModel):
    """Raw LLM output plus the repair options for ``POST /repair``."""

    text: str = Field(..., description="Raw model output to repair")
    extract_reasoning: bool = Field(True, description="Pull <think>-style reasoning blocks out before repairing")
    extract_markdown: bool = Field(True, description="Strip a surrounding markdown code fence")
    validate_output: bool = Field(True, alias="validate", description="Report validity of extract-only results")
    clean: bool = Field(True, description="Apply fixers; false returns the extracted text untouched")
    mode: Optional[str] = Field(
        None, description="Recipe template: 'conservative', 'adaptive' or 'aggressive' (default: chosen per input)"
    )

    model_config = {"populate_by_name": True}


class PipelineRequest(BaseModel):
    """Input for the synchronous fixed pipeline."""

    text: str = Field(..., description="Raw model output to repair")


class DiagnoseRequest(BaseModel):
    """Input for ``POST /diagnose``."""

    text: str = Field(..., description="Text to analyse without modifying it")


class ChangeModel(BaseModel):
    change_type: str = Field(..., description="Kind of edit, e.g. 'add_comma' or 'escape_control_char'")
    location: int = Field(0, description="Character offset of the edit in the text it was applied to")
    before: Optional[str] = Field(None, description="Text before the edit")
    after: Optional[str] = Field(None, description="Text after the edit")
    count: int = Field(1, description="Number of occurrences this record covers")
    note: str = Field("", description="Free-form detail")


class RepairResponse(BaseModel):
    """Result of a repair call."""

    cleaned_json: str = Field(..., description="Repaired JSON text, or the best effort when success is false")
    reasoning: str = Field("", description="Reasoning extracted from the input")
    success: bool = Field(..., description="Whether cleaned_json parses as JSON")
    confidence: float = Field(..., description="Confidence in the repair, 0 to 1")
    mode: str = Field(..., description="How the result was produced, e.g. 'passthrough', 'pipeline' or 'recipe:adaptive'")
    changes: List[ChangeModel] = Field(default_factory=list, description="Audit trail of applied edits")
    request_id: Optional[str] = Field(None, description="Request ID for log correlation")


class SpecificIssuesModel(BaseModel):
    comma: bool = False
    control_chars: bool = False
    brackets: bool = False
    quotes: bool = False


class DiagnosisResponse(BaseModel):
    """Diagnosis of a text's JSON problems."""

    is_valid: bool = Field(..., description="Whether the text already parses")
    errors: List[str] = Field(default_factory=list, description="Detected problems")
    suggestions: List[str] = Field(default_factory=list, description="Suggested fixes")
    severity: str = Field("low", description="'low', 'medium' or 'high'")
    can_be_fixed: bool = Field(True, description="Whether automatic repair is likely to succeed")
    specific_issues: SpecificIssuesModel = Field(default_factory=SpecificIssuesModel)
    repair_strategy: List[str] = Field(default_factory=list, description="Strategies to try, in order")
    error_position: Optional[int] = Field(None, description="Offset reported by the JSON parser")
    problem_context: Optional[str] = Field(None, description="Text around the error, the offending character marked")
    has_bom: bool = Field(False, description="Whether the text starts with a byte order mark")
    encoding: str = Field("ASCII/UTF-8", description="Encoding guess")
    suspicious_positions: List[int] = Field(default_factory=list)
    control_char_positions: List[int] = Field(default_factory=list)
    bracket_counts: Optional[Dict[str, int]] = Field(None, description="Brace and bracket counts outside strings")
    request_id: Optional[str] = Field(None, description="Request ID for log correlation")
