"""
Enumeration types for the tracker rules pipeline.

These enums provide type-safe constants for error codes, rule actions,
and pipeline outcomes throughout the system.
"""

from enum import Enum


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class HTTPClientErrorCode(Enum):
    """Error codes for the fetch layer and tracker data fetcher."""

    CONNECTIVITY = "connectivity"
    INVALID_RESPONSE = "invalid_response"
    STATUS_CODE = "status_code"
    STORAGE_ERROR = "storage_error"
    INVALID_URL = "invalid_url"


class RuleGenerationErrorCode(Enum):
    """Error codes for rule generation failures."""

    DECODING_FAILED = "decoding_failed"
    FALLBACK_NOT_AVAILABLE = "fallback_not_available"


class PersistenceErrorCode(Enum):
    """Error codes for persistence failures."""

    IO_ERROR = "io_error"
    PARSE_ERROR = "parse_error"
    HMAC_MISMATCH = "hmac_mismatch"


class RuleAction(Enum):
    """Action types understood by the content rule engine."""

    BLOCK = "block"
    IGNORE_PREVIOUS_RULES = "ignore-previous-rules"


class TrackerAction(Enum):
    """Actions declared in the tracker dataset."""

    BLOCK = "block"
    IGNORE = "ignore"


class PipelineStatus(Enum):
    """Outcome of an orchestrated pipeline run."""

    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RuleSource(Enum):
    """Where an applied rule list came from."""

    CACHE = "cache"
    NETWORK = "network"
    REAPPLIED = "reapplied"
