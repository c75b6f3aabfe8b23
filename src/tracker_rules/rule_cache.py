"""
Rule Cache for compiled tracker rules.

Keeps the most recently compiled rule list as two files inside a dedicated
cache directory: the raw rules text and a small JSON metadata document
holding the store timestamp and ETag. The cache is an optimization, not a
source of truth: every read failure is reported as a cache miss.
"""

import json
import time
from pathlib import Path
from typing import Callable, Optional

from .audit_logger import AuditLogger
from .config import DEFAULT_MAX_CACHE_DURATION_SECONDS
from .enums import PersistenceErrorCode
from .exceptions import PersistenceError
from .kv_store import atomic_write_bytes
from .models import CachedRuleSnapshot


CACHE_DIRECTORY_NAME = "TrackerRulesCache"
RULES_FILENAME = "trackerRules.json"
METADATA_FILENAME = "trackerRules.metadata.json"


class RuleCache:
    """Durable, time-bounded cache of the compiled rule list."""

    def __init__(
        self,
        base_dir: Path,
        max_cache_duration: float = DEFAULT_MAX_CACHE_DURATION_SECONDS,
        time_source: Callable[[], float] = time.time,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the rule cache.

        Args:
            base_dir: Directory under which the cache subdirectory lives
            max_cache_duration: Age in seconds at which get_cached_rules() expires a snapshot
            time_source: Clock returning unix seconds
            logger: Optional audit logger
        """
        self._cache_dir = base_dir / CACHE_DIRECTORY_NAME
        self._max_cache_duration = max_cache_duration
        self._time_source = time_source
        self._logger = logger

        try:
            self._ensure_directory()
        except OSError as e:
            self._warn("Could not create cache directory", e)

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    @property
    def rules_file(self) -> Path:
        return self._cache_dir / RULES_FILENAME

    @property
    def metadata_file(self) -> Path:
        return self._cache_dir / METADATA_FILENAME

    @property
    def max_cache_duration(self) -> float:
        return self._max_cache_duration

    def _ensure_directory(self) -> None:
        self._cache_dir.mkdir(parents=True, exist_ok=True)

    def store_cached_rules(self, rules_json: str, etag: Optional[str]) -> None:
        """
        Persist rules with their ETag and the current time, replacing any prior snapshot.

        Raises:
            PersistenceError: If either file cannot be written
        """
        metadata = {
            "timestamp": float(self._time_source()),
            "etag": etag or "",
        }

        try:
            self._ensure_directory()
            atomic_write_bytes(self.rules_file, rules_json.encode("utf-8"))
            atomic_write_bytes(self.metadata_file, json.dumps(metadata).encode("utf-8"))
        except OSError as e:
            raise PersistenceError(
                code=PersistenceErrorCode.IO_ERROR.value,
                message=f"Failed to store cached rules: {e}",
                details={"cache_dir": str(self._cache_dir)},
            )

        if self._logger:
            self._logger.debug(
                "RuleCache",
                "Stored cached rules",
                {"bytes": len(rules_json), "etag": etag},
            )

    def get_cached_rules(self) -> Optional[CachedRuleSnapshot]:
        """Return the stored snapshot unless it is missing, unreadable, or expired."""
        snapshot = self.get_most_recent_rules()
        if snapshot is None:
            return None

        if self.age_of(snapshot) >= self._max_cache_duration:
            if self._logger:
                self._logger.debug("RuleCache", "Cached rules expired", {"timestamp": snapshot.timestamp})
            return None

        return snapshot

    def get_most_recent_rules(self) -> Optional[CachedRuleSnapshot]:
        """Return the stored snapshot regardless of age, or None if missing or unreadable."""
        if not (self.rules_file.exists() and self.metadata_file.exists()):
            return None

        try:
            metadata = json.loads(self.metadata_file.read_text(encoding="utf-8"))
            rules_json = self.rules_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            self._warn("Error reading cached rules", e)
            return None

        if not isinstance(metadata, dict):
            return None

        timestamp = metadata.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            return None

        etag = metadata.get("etag")
        return CachedRuleSnapshot(
            rules_json=rules_json,
            etag=etag if isinstance(etag, str) and etag else None,
            timestamp=float(timestamp),
        )

    def age_of(self, snapshot: CachedRuleSnapshot) -> float:
        """Seconds elapsed since the snapshot was stored."""
        return self._time_source() - snapshot.timestamp

    def clear_cache(self) -> None:
        """Delete both cache files; missing files are ignored."""
        for path in (self.rules_file, self.metadata_file):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                self._warn("Could not remove cache file", e)

    def _warn(self, message: str, error: Exception) -> None:
        if self._logger:
            self._logger.warn(
                "RuleCache",
                message,
                {"error_message": str(error), "error_type": type(error).__name__},
            )
