"""Custom exception classes."""


class JsonCleanerException(Exception):
    """Base exception for the JSON cleaner."""

    pass


class EmptyInputError(JsonCleanerException):
    """Raised when the input is empty or whitespace-only."""

    def __init__(self, message: str = "Empty input provided - cannot process"):
        super().__init__(message)


class StillInvalidAfterRepairError(JsonCleanerException):
    """Raised on request when a repair finished without producing valid JSON."""

    def __init__(self, message: str, best_effort: str = ""):
        super().__init__(message)
        self.best_effort = best_effort


class FixerInternalError(JsonCleanerException):
    """Raised when a fixer or strategy fails unexpectedly while rewriting text."""

    def __init__(self, operation_id: str, cause: Exception):
        super().__init__(f"Operation '{operation_id}' failed: {cause}")
        self.operation_id = operation_id
        self.cause = cause


class TimeoutExceededError(JsonCleanerException):
    """Raised when a recipe runs past its execution deadline."""

    pass


class InvalidRecipeError(JsonCleanerException):
    """Raised when a recipe cannot be built."""

    pass


class InputTooLargeError(JsonCleanerException):
    """Raised when a request carries more text than the service accepts."""

    pass
