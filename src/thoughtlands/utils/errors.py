"""
Custom exception classes for Thoughtlands.
"""

from typing import Any


class ThoughtlandsError(Exception):
    """Base exception for all Thoughtlands errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        suggestions: list[str] | None = None,
        context: dict[str, Any] | None = None
    ):
        """Initialize error with enhanced information.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            suggestions: List of suggested remediation steps
            context: Additional context information for debugging
        """
        super().__init__(message)
        self.error_code = error_code or self.__class__.__name__.upper()
        self.suggestions = suggestions or []
        self.context = context or {}


class ConfigurationError(ThoughtlandsError):
    """Raised when there is an issue with the application configuration."""
    pass


class ValidationError(ThoughtlandsError):
    """Raised when input data fails validation."""
    pass


class InputError(ValidationError):
    """Raised for empty concepts or blank text; never retried."""
    pass


class ServiceError(ThoughtlandsError):
    """Base exception for errors occurring in service layers."""
    pass


# Backend (model server) errors
class BackendError(ServiceError):
    """Base exception for failures talking to the model server."""

    retryable = False

    def __init__(self, message: str, status: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status = status


class BackendUnavailable(BackendError):
    """Connection refused, DNS failure, timeout, or model not installed."""

    retryable = True


class BackendOverloaded(BackendError):
    """HTTP 500 or 502+ from the model server."""

    retryable = True


class BackendRequestError(BackendError):
    """HTTP 4xx other than the endpoint-fallback statuses."""
    pass


class InvalidResponse(BackendError):
    """Malformed JSON, missing content, or an empty embedding vector."""
    pass


class PersistFailure(ServiceError):
    """Raised when the embedding cache could not be written to disk.

    The in-memory cache has already been updated when this is raised.
    """
    pass


# Resolution outcomes that halt the pipeline
class ResolutionError(ThoughtlandsError):
    """Base exception for stage-terminal failures of a concept resolution."""
    pass


class NoTagsSuggested(ResolutionError):
    """The suggestion stage produced no tags that exist in the vault."""
    pass


class NoTagsRefined(ResolutionError):
    """The refinement stage produced no tags that exist in the vault."""
    pass


class NoTagsAfterFiltering(ResolutionError):
    """Every refined tag was removed by the ignored-tags setting."""
    pass


class NoNotesFound(ResolutionError):
    """The final note set is empty."""
    pass
