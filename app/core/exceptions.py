"""Error taxonomy for the matrix and DFD pipelines."""

from typing import Any


class PipelineError(Exception):
    """Base exception for pipeline failures."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class PreconditionError(PipelineError):
    """Required upstream data is missing. Never retried."""


class GenerationError(PipelineError):
    """A structured generation call failed after all attempts."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        last_error: Exception | None = None,
    ):
        super().__init__(message, details)
        self.last_error = last_error


class ProviderError(GenerationError):
    """The external generation service returned a non-success response."""


class OutputValidationError(GenerationError):
    """Model output could not be extracted, parsed or validated to schema."""
