"""Value types shared by detectors, fixers, recipes and the engine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from llm_json_cleaner.services.context import CleaningContext


class IssueType:
    """Identifiers for issues reported by detectors."""

    CONTROL_CHARACTER = "control_character"
    MISSING_COMMA = "missing_comma"
    UNBALANCED_BRACES = "unbalanced_braces"
    UNBALANCED_BRACKETS = "unbalanced_brackets"
    UNTERMINATED_STRING = "unterminated_string"
    MARKDOWN_CODE_BLOCK = "markdown_code_block"
    THINK_TAG = "think_tag"


class ChangeType:
    """Kinds of textual mutation recorded in the change log."""

    ESCAPE = "escape"
    ADD_COMMA = "add_comma"
    ADD_BRACKET = "add_bracket"
    REMOVE_BRACKET = "remove_bracket"
    STRUCTURAL_FIX = "structural_fix"
    EXTRACT = "extract"
    REPLACE = "replace"
    REMOVE = "remove"
    ADD = "add"
    REMOVE_DUPLICATE = "remove_duplicate"
    FIX_QUOTE = "fix_quote"
    ROLLBACK = "rollback"


class Risk:
    """Risk tags used in impact estimates."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class Detection:
    """A located, confidence-scored issue report. Never mutated after creation."""

    issue_type: str
    location: int
    confidence: float
    description: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ChangeRecord:
    """One entry of the append-only audit trail of text mutations."""

    change_type: str
    location: int = 0
    before: Optional[str] = None
    after: Optional[str] = None
    count: int = 1
    note: str = ""


@dataclass(frozen=True)
class Impact:
    """Uniform risk/confidence estimate returned by every operation."""

    risk: str
    estimated_changes: int
    estimated_time_ms: float
    confidence: float
    might_break_valid: bool


@dataclass
class OperationError:
    """Error details attached to a failed operation."""

    code: str
    message: str
    recoverable: bool = True


@dataclass
class OperationResult:
    """
    Outcome of applying one operation to a text.

    Operations never touch the context's text themselves; the recipe step
    that ran them applies ``candidate_text`` when ``success`` is set.
    """

    success: bool
    candidate_text: Optional[str] = None
    changes: List[ChangeRecord] = field(default_factory=list)
    confidence: float = 1.0
    should_continue: bool = True
    error: Optional[OperationError] = None
    operation_id: str = ""
    metrics: Dict[str, float] = field(default_factory=dict)

    @property
    def produced_text(self) -> bool:
        """Whether the operation proposes a new text."""
        return self.success and self.candidate_text is not None


@dataclass
class FixResult:
    """Raw result of a fixer's rewrite, before it is wrapped into an OperationResult."""

    success: bool
    text: str
    changes: List[ChangeRecord] = field(default_factory=list)
    confidence: float = 1.0
    error: Optional[OperationError] = None


class CleaningOperation(ABC):
    """Common interface of detectors and fixers."""

    id: str = ""
    name: str = ""
    description: str = ""
    priority: str = "medium"

    @abstractmethod
    def should_apply(self, context: CleaningContext) -> bool:
        """Decide whether the operation is worth running on the context."""

    @abstractmethod
    def apply(self, text: str, context: CleaningContext) -> OperationResult:
        """Run the operation against ``text``."""

    @abstractmethod
    def estimate_impact(self, text: str, context: CleaningContext) -> Impact:
        """Estimate risk and size of the change without performing it."""

    def conflicts_with(self, other: CleaningOperation) -> bool:
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"
