"""
Exception classes for the tracker rules pipeline.

All exceptions inherit from TrackerRulesError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class TrackerRulesError(Exception):
    """Base exception for all tracker rules errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(TrackerRulesError):
    """Raised when a domain or other input fails validation."""

    pass


class HTTPClientError(TrackerRulesError):
    """
    Raised by the fetch layer and the tracker data fetcher.

    Codes: connectivity, invalid_response, status_code, storage_error,
    invalid_url. For status_code errors, details["status_code"] holds the
    HTTP status.
    """

    @property
    def status_code(self) -> Optional[int]:
        """HTTP status for status_code errors, None otherwise."""
        return self.details.get("status_code")


class DatasetDecodeError(TrackerRulesError):
    """Raised when dataset bytes do not match the tracker dataset schema."""

    pass


class RuleGenerationError(TrackerRulesError):
    """Raised when no rule list can be produced (decoding_failed, fallback_not_available)."""

    pass


class PersistenceError(TrackerRulesError):
    """Raised when persistence operations fail (file I/O, parse errors)."""

    pass


class TamperingError(PersistenceError):
    """Raised when HMAC validation fails, indicating data tampering."""

    pass


class RuleListCompilationError(TrackerRulesError):
    """Raised when the rule engine rejects a compiled rule list."""

    pass


class PipelineCancelledError(TrackerRulesError):
    """Raised when a pipeline run is cancelled before completion."""

    pass
