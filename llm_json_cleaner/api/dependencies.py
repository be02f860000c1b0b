"""Shared API dependencies."""

from llm_json_cleaner.services.cleaner import JsonCleaner, default_cleaner


def get_cleaner() -> JsonCleaner:
    """Get the JSON cleaner service instance."""
    return default_cleaner
