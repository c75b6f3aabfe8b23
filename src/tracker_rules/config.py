"""
Configuration dataclasses for the tracker rules pipeline.

This module defines all configuration structures used throughout the system,
including the dataset endpoint, retry behavior, on-disk storage, cache
lifetimes, and logging configuration.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_TRACKER_DATA_URL = "https://staticcdn.duckduckgo.com/trackerblocking/v2.1/tds.json"
DEFAULT_DATA_DIR = Path.home() / ".tracker_rules"

# 7 days
DEFAULT_MAX_CACHE_DURATION_SECONDS = 86400 * 7
# 30 minutes
DEFAULT_REAPPLY_WINDOW_SECONDS = 1800


@dataclass
class FetchConfig:
    """Remote tracker dataset endpoint configuration."""

    url: str = DEFAULT_TRACKER_DATA_URL
    timeout_seconds: float = 15.0


@dataclass
class RetryConfig:
    """Retry behavior configuration."""

    max_retries: int = 2
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    retryable_errors: list[str] = field(
        default_factory=lambda: ["connectivity", "status_code", "invalid_response"]
    )


@dataclass
class StorageConfig:
    """Local persistence configuration."""

    data_dir: Path = DEFAULT_DATA_DIR
    hmac_secret: Optional[str] = None

    @property
    def kv_store_path(self) -> Path:
        """Key-value store file holding ETags and the allowlist."""
        return self.data_dir / "store.json"

    @property
    def rules_output_dir(self) -> Path:
        """Directory the local rule engine writes compiled lists to."""
        return self.data_dir / "rule_lists"


@dataclass
class CacheConfig:
    """Rule cache lifetime configuration."""

    max_cache_duration_seconds: float = DEFAULT_MAX_CACHE_DURATION_SECONDS
    reapply_window_seconds: float = DEFAULT_REAPPLY_WINDOW_SECONDS


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    fetch: FetchConfig = field(default_factory=FetchConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def create_default_config(load_env_file: bool = True) -> SystemConfig:
    """
    Create a system configuration from defaults and environment variables.

    Reads a .env file (if present) before consulting the environment.

    Args:
        load_env_file: If True, load variables from a .env file first

    Returns:
        SystemConfig with environment overrides applied
    """
    if load_env_file:
        load_dotenv()

    data_dir = os.getenv("TRACKER_RULES_DATA_DIR", "").strip()
    hmac_secret = os.getenv("TRACKER_RULES_HMAC_SECRET", "").strip()

    return SystemConfig(
        fetch=FetchConfig(
            url=os.getenv("TRACKER_RULES_URL", DEFAULT_TRACKER_DATA_URL).strip()
            or DEFAULT_TRACKER_DATA_URL,
            timeout_seconds=_float_env("TRACKER_RULES_HTTP_TIMEOUT", 15.0),
        ),
        retry=RetryConfig(
            max_retries=max(0, _int_env("TRACKER_RULES_RETRY_COUNT", 2)),
        ),
        storage=StorageConfig(
            data_dir=Path(data_dir).expanduser() if data_dir else DEFAULT_DATA_DIR,
            hmac_secret=hmac_secret or None,
        ),
        cache=CacheConfig(),
        logging=LoggingConfig(
            level=(os.getenv("TRACKER_RULES_LOG_LEVEL", "info") or "info").lower(),
        ),
    )
