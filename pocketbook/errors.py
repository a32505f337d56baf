"""
Error Taxonomy

Every failure the pipeline can report is one of these classes.
Flow entry points catch PocketbookError and turn it into a
failed OperationResult carrying `user_message`.
"""

from typing import Optional


RETRY_WITH_CLEARER_INPUT = (
    "We couldn't read this receipt. Please try again with clearer text "
    "or a sharper photo."
)
SERVICE_UNAVAILABLE = (
    "The receipt reader is not available right now. Please try again later."
)


class PocketbookError(Exception):
    """Base exception for all expected pipeline failures."""

    # When set, shown instead of the technical message
    default_user_message: Optional[str] = None

    @property
    def user_message(self) -> str:
        return self.default_user_message or str(self)


class UnauthorizedError(PocketbookError):
    """No session, or the caller lacks rights over the target."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class InvalidInputError(PocketbookError):
    """Client-correctable input problem."""
    pass


class NotFoundError(PocketbookError):
    """Referenced invoice, pocket or user does not exist."""
    pass


class DuplicateError(PocketbookError):
    """Attempted to create something that already exists."""
    pass


# =============================================================================
# EXTRACTION - the call to the external model
# =============================================================================

class ExtractionError(PocketbookError):
    """Base exception for extraction failures."""
    default_user_message = RETRY_WITH_CLEARER_INPUT


class ExtractionServiceError(ExtractionError):
    """Transport failure or non-success response from the model endpoint."""
    default_user_message = SERVICE_UNAVAILABLE


class ExtractionTimeoutError(ExtractionServiceError):
    """The model did not answer within the configured bound."""
    default_user_message = (
        "Reading the receipt took too long. Please try again."
    )


class EmptyResponseError(ExtractionError):
    """The model answered without any content."""
    pass


# =============================================================================
# VALIDATION - the shape of the model's answer
# =============================================================================

class ValidationError(PocketbookError):
    """Base exception for unusable extraction output."""
    default_user_message = RETRY_WITH_CLEARER_INPUT


class MalformedJsonError(ValidationError):
    """The answer is not a JSON object."""
    pass


class SchemaViolationError(ValidationError):
    """Required fields are missing or have the wrong type."""

    def __init__(self, message: str, fields: Optional[list[str]] = None):
        self.fields = fields or []
        super().__init__(message)


class EmptyExtractionError(ValidationError):
    """No items and no total - the source was most likely unreadable."""
    pass


# =============================================================================
# STORAGE
# =============================================================================

class StorageError(PocketbookError):
    """Base exception for storage operations."""
    default_user_message = "Could not save your changes. Please try again."


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
