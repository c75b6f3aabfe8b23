"""
Tracker Rules - Fetch a tracker dataset and maintain compiled blocking rules.

This package fetches the tracker dataset with ETag conditional requests,
compiles it into content blocking rules honoring a user allowlist, caches
the result on disk, and hands it to a rule engine store.
"""

__version__ = "0.1.0"

from tracker_rules.exceptions import (
    TrackerRulesError,
    ValidationError,
    HTTPClientError,
    DatasetDecodeError,
    RuleGenerationError,
    PersistenceError,
    TamperingError,
    RuleListCompilationError,
    PipelineCancelledError,
)
from tracker_rules.enums import (
    LogLevel,
    HTTPClientErrorCode,
    RuleGenerationErrorCode,
    PersistenceErrorCode,
    RuleAction,
    TrackerAction,
    PipelineStatus,
    RuleSource,
)
from tracker_rules.config import (
    FetchConfig,
    RetryConfig,
    StorageConfig,
    CacheConfig,
    LoggingConfig,
    SystemConfig,
    create_default_config,
)
from tracker_rules.models import (
    HTTPRequest,
    HTTPResponse,
    FetchedDataset,
    CachedRuleSnapshot,
    ContentRule,
)
from tracker_rules.audit_logger import (
    AuditLogger,
    LogEntry,
)
from tracker_rules.domain_validator import normalize_domain
from tracker_rules.kv_store import (
    KeyValueStore,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
)
from tracker_rules.etag_storage import ETagStorage
from tracker_rules.tracker_data_storage import (
    TrackerDataStorage,
    InMemoryTrackerDataStorage,
)
from tracker_rules.http_client import (
    HTTPClient,
    HttpxClient,
)
from tracker_rules.etag_decorator import ETagDecorator
from tracker_rules.tracker_data_fetcher import TrackerDataFetcher
from tracker_rules.tracker_data import (
    Entity,
    Tracker,
    TrackerRule,
    TrackerData,
    decode_tracker_data,
)
from tracker_rules.rules_builder import ContentBlockerRulesBuilder
from tracker_rules.rules_generator import TrackerRulesGenerator
from tracker_rules.rule_cache import RuleCache
from tracker_rules.allowlist_manager import AllowlistManager
from tracker_rules.content_blocker import (
    ContentBlocker,
    ContentRuleListStore,
    InMemoryContentRuleListStore,
    FileContentRuleListStore,
    generate_rule_list_identifier,
)
from tracker_rules.retry_manager import (
    RetryManager,
    RetryResult,
)
from tracker_rules.orchestrator import (
    CancellationToken,
    PipelineResult,
    RulesOrchestrator,
)
from tracker_rules.cli import (
    main as cli_main,
    build_pipeline,
    create_parser,
    load_config_from_file,
    save_config_to_file,
)

__all__ = [
    # Exceptions
    "TrackerRulesError",
    "ValidationError",
    "HTTPClientError",
    "DatasetDecodeError",
    "RuleGenerationError",
    "PersistenceError",
    "TamperingError",
    "RuleListCompilationError",
    "PipelineCancelledError",
    # Enums
    "LogLevel",
    "HTTPClientErrorCode",
    "RuleGenerationErrorCode",
    "PersistenceErrorCode",
    "RuleAction",
    "TrackerAction",
    "PipelineStatus",
    "RuleSource",
    # Configuration
    "FetchConfig",
    "RetryConfig",
    "StorageConfig",
    "CacheConfig",
    "LoggingConfig",
    "SystemConfig",
    "create_default_config",
    # Models
    "HTTPRequest",
    "HTTPResponse",
    "FetchedDataset",
    "CachedRuleSnapshot",
    "ContentRule",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    # Storage
    "normalize_domain",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "ETagStorage",
    "TrackerDataStorage",
    "InMemoryTrackerDataStorage",
    # Fetch
    "HTTPClient",
    "HttpxClient",
    "ETagDecorator",
    "TrackerDataFetcher",
    # Rules
    "Entity",
    "Tracker",
    "TrackerRule",
    "TrackerData",
    "decode_tracker_data",
    "ContentBlockerRulesBuilder",
    "TrackerRulesGenerator",
    "RuleCache",
    "AllowlistManager",
    "ContentBlocker",
    "ContentRuleListStore",
    "InMemoryContentRuleListStore",
    "FileContentRuleListStore",
    "generate_rule_list_identifier",
    # Orchestration
    "RetryManager",
    "RetryResult",
    "CancellationToken",
    "PipelineResult",
    "RulesOrchestrator",
    # CLI
    "cli_main",
    "build_pipeline",
    "create_parser",
    "load_config_from_file",
    "save_config_to_file",
]
