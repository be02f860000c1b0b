"""Recover valid JSON from raw LLM output."""

__version__ = "1.0.0"

from llm_json_cleaner.services.cleaner import (  # noqa: E402
    JsonCleaner,
    RepairOptions,
    RepairResult,
    diagnose,
    repair,
    repair_async,
)
from llm_json_cleaner.services.engine import CleaningEngine, CleaningOptions  # noqa: E402
from llm_json_cleaner.services.recipe import Recipe, RecipeBuilder  # noqa: E402
from llm_json_cleaner.services.templates import get_template  # noqa: E402
from llm_json_cleaner.utils.exceptions import (  # noqa: E402
    EmptyInputError,
    JsonCleanerException,
    StillInvalidAfterRepairError,
)

__all__ = [
    "CleaningEngine",
    "CleaningOptions",
    "EmptyInputError",
    "JsonCleaner",
    "JsonCleanerException",
    "Recipe",
    "RecipeBuilder",
    "RepairOptions",
    "RepairResult",
    "StillInvalidAfterRepairError",
    "diagnose",
    "get_template",
    "repair",
    "repair_async",
]
