"""
Audit Logger module for the tracker rules pipeline.

Provides structured logging with dual-format output (JSON and human-readable text),
a minimum severity filter, and sensitive data masking.
"""

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, TextIO

from tracker_rules.enums import LogLevel


LEVEL_ORDER = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
}


def describe_error(error: Exception) -> dict:
    """Flatten an exception into log fields (type, message, and code/details if present)."""
    fields = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }
    code = getattr(error, "code", None)
    if code is not None:
        fields["error_code"] = code
    details = getattr(error, "details", None)
    if isinstance(details, dict) and details:
        fields["error_details"] = dict(details)
    return fields


@dataclass
class LogEntry:
    """Represents a single log entry with all metadata."""

    timestamp: str
    level: LogLevel
    component: str
    message: str
    data: dict = field(default_factory=dict)


class AuditLogger:
    """
    Structured logger with dual-format output.

    Supports:
    - JSON and human-readable text output formats
    - Minimum level filtering (entries below it are dropped)
    - Automatic masking of sensitive data (tokens, secrets, passwords)
    - Full error context logging
    """

    # Keys that should be masked in log output
    SENSITIVE_KEYS = frozenset({
        'token', 'secret', 'password', 'api_key', 'hmac_secret',
        'auth', 'authorization', 'cookie', 'credential', 'credentials',
        'private_key', 'access_token',
    })

    MASK_VALUE = "***MASKED***"

    def __init__(
        self,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
        min_level: LogLevel = LogLevel.INFO,
    ):
        """
        Initialize the audit logger.

        Args:
            output_format: Output format - 'json', 'text', or 'both'
            output_stream: Output stream for log entries (defaults to sys.stderr)
            min_level: Entries below this level are discarded
        """
        if output_format not in ("json", "text", "both"):
            raise ValueError(f"Invalid output_format: {output_format}")

        self._output_format = output_format
        self._output_stream = output_stream or sys.stderr
        self._min_level = min_level
        self._entries: list[LogEntry] = []  # Store entries for testing

    @classmethod
    def from_level_name(
        cls,
        level: str,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
    ) -> "AuditLogger":
        """Build a logger from a config level name such as 'info' or 'warning'."""
        name = (level or "info").lower()
        if name == "warning":
            name = "warn"
        try:
            min_level = LogLevel(name)
        except ValueError:
            min_level = LogLevel.INFO
        return cls(output_format=output_format, output_stream=output_stream, min_level=min_level)

    @property
    def output_format(self) -> str:
        """Get the current output format."""
        return self._output_format

    @property
    def min_level(self) -> LogLevel:
        """Get the minimum level that is emitted."""
        return self._min_level

    @property
    def entries(self) -> list[LogEntry]:
        """Get all logged entries (for testing)."""
        return self._entries.copy()

    def is_enabled_for(self, level: LogLevel) -> bool:
        """Return True if entries at this level are emitted."""
        return LEVEL_ORDER[level] >= LEVEL_ORDER[self._min_level]

    def log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Log an entry in the configured format(s).

        Args:
            level: Log severity level
            component: Component name generating the log
            message: Human-readable log message
            data: Optional additional data to include

        Returns:
            The created LogEntry object, or None if filtered out by level
        """
        if not self.is_enabled_for(level):
            return None

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=message,
            data=self.mask_sensitive_data(data or {}),
        )

        self._entries.append(entry)
        self._output_entry(entry)

        return entry

    def debug(self, component: str, message: str, data: Optional[dict] = None) -> Optional[LogEntry]:
        return self.log(LogLevel.DEBUG, component, message, data)

    def info(self, component: str, message: str, data: Optional[dict] = None) -> Optional[LogEntry]:
        return self.log(LogLevel.INFO, component, message, data)

    def warn(self, component: str, message: str, data: Optional[dict] = None) -> Optional[LogEntry]:
        return self.log(LogLevel.WARN, component, message, data)

    def error(self, component: str, message: str, data: Optional[dict] = None) -> Optional[LogEntry]:
        return self.log(LogLevel.ERROR, component, message, data)

    def log_error(
        self,
        component: str,
        message: str,
        error: Optional[Exception] = None,
        request_url: Optional[str] = None,
        response_status_code: Optional[int] = None,
        additional_data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Log an error with full context.

        TrackerRulesError details are copied under "error_details", and a
        status_code detail fills in response_status_code when none is given.

        Args:
            component: Component name generating the log
            message: Human-readable error message
            error: Optional exception object
            request_url: Optional URL of the failed request
            response_status_code: Optional HTTP status code
            additional_data: Optional additional context data

        Returns:
            The created LogEntry object, or None if errors are filtered out
        """
        data = dict(additional_data or {})

        if error is not None:
            data.update(describe_error(error))
            details = data.get("error_details") or {}
            if response_status_code is None:
                response_status_code = details.get("status_code")

        if request_url is not None:
            data["request_url"] = request_url
        if response_status_code is not None:
            data["response_status_code"] = response_status_code

        return self.log(LogLevel.ERROR, component, message, data)

    def mask_sensitive_data(self, data: dict) -> dict:
        """Return a copy of data with values under sensitive keys masked, at any depth."""
        if not isinstance(data, dict):
            return data
        return {
            key: self.MASK_VALUE if self.is_sensitive_key(key) else self._mask_value(value)
            for key, value in data.items()
        }

    def is_sensitive_key(self, key) -> bool:
        name = str(key).lower()
        return any(pattern in name for pattern in self.SENSITIVE_KEYS)

    def _mask_value(self, value):
        if isinstance(value, dict):
            return self.mask_sensitive_data(value)
        if isinstance(value, list):
            return [self._mask_value(item) for item in value]
        return value

    def _output_entry(self, entry: LogEntry) -> None:
        """Write a log entry in the configured format(s)."""
        if self._output_format in ("json", "both"):
            self._output_stream.write(self._format_json(entry) + "\n")

        if self._output_format in ("text", "both"):
            self._output_stream.write(self._format_text(entry) + "\n")

        self._output_stream.flush()

    def _format_json(self, entry: LogEntry) -> str:
        obj = {
            "timestamp": entry.timestamp,
            "level": entry.level.value,
            "component": entry.component,
            "message": entry.message,
            "data": entry.data,
        }
        return json.dumps(obj, ensure_ascii=False, default=str)

    def _format_text(self, entry: LogEntry) -> str:
        # Format: [TIMESTAMP] LEVEL [COMPONENT] MESSAGE {data}
        parts = [
            f"[{entry.timestamp}]",
            entry.level.value.upper(),
            f"[{entry.component}]",
            entry.message,
        ]

        if entry.data:
            parts.append(json.dumps(entry.data, ensure_ascii=False, default=str))

        return " ".join(parts)

    def get_json_output(self, entry: LogEntry) -> str:
        """Get JSON output for an entry (for testing)."""
        return self._format_json(entry)

    def get_text_output(self, entry: LogEntry) -> str:
        """Get text output for an entry (for testing)."""
        return self._format_text(entry)

    def clear_entries(self) -> None:
        """Clear all stored log entries (for testing)."""
        self._entries.clear()
