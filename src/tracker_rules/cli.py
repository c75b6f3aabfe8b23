"""
Command-line interface for the tracker rules pipeline.

This module provides the main CLI entry point with commands for:
- refresh: Fetch the tracker dataset and apply compiled rules
- show-cache / clear-cache: Inspect or drop the compiled rule cache
- allowlist: Manage domains exempted from blocking
- config: Configuration management
"""

import argparse
import asyncio
import json
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import __version__
from .allowlist_manager import AllowlistManager
from .audit_logger import AuditLogger
from .config import (
    DEFAULT_DATA_DIR,
    DEFAULT_TRACKER_DATA_URL,
    CacheConfig,
    FetchConfig,
    LoggingConfig,
    RetryConfig,
    StorageConfig,
    SystemConfig,
    create_default_config,
)
from .content_blocker import ContentBlocker, FileContentRuleListStore
from .etag_decorator import ETagDecorator
from .etag_storage import ETagStorage
from .exceptions import TrackerRulesError
from .http_client import HTTPClient, HttpxClient
from .kv_store import JsonFileKeyValueStore
from .orchestrator import PipelineResult, RulesOrchestrator
from .retry_manager import RetryManager
from .rule_cache import RuleCache
from .rules_generator import TrackerRulesGenerator
from .tracker_data_fetcher import TrackerDataFetcher
from .tracker_data_storage import TrackerDataStorage


DEFAULT_CONFIG_PATH = DEFAULT_DATA_DIR / "config.json"


@dataclass
class Pipeline:
    """Wired pipeline components sharing one data directory."""

    allowlist_manager: AllowlistManager
    rule_cache: RuleCache
    content_blocker: ContentBlocker
    orchestrator: RulesOrchestrator


def create_logger(config: SystemConfig, verbose: bool = False) -> AuditLogger:
    """Create the audit logger; --verbose lowers the level to debug."""
    level = "debug" if verbose else config.logging.level
    return AuditLogger.from_level_name(level, output_format=config.logging.output_format)


def create_allowlist_manager(
    config: SystemConfig,
    logger: Optional[AuditLogger] = None,
) -> AllowlistManager:
    store = JsonFileKeyValueStore(
        file_path=config.storage.kv_store_path,
        hmac_secret=config.storage.hmac_secret,
    )
    return AllowlistManager(store, logger=logger)


def create_rule_cache(config: SystemConfig, logger: Optional[AuditLogger] = None) -> RuleCache:
    return RuleCache(
        base_dir=config.storage.data_dir,
        max_cache_duration=config.cache.max_cache_duration_seconds,
        logger=logger,
    )


def build_pipeline(
    config: SystemConfig,
    http_client: HTTPClient,
    logger: Optional[AuditLogger] = None,
) -> Pipeline:
    """
    Wire all pipeline components from configuration.

    Args:
        config: System configuration
        http_client: Underlying HTTP client (wrapped with ETag handling)
        logger: Optional audit logger

    Returns:
        Pipeline with a ready orchestrator
    """
    store = JsonFileKeyValueStore(
        file_path=config.storage.kv_store_path,
        hmac_secret=config.storage.hmac_secret,
    )
    allowlist_manager = AllowlistManager(store, logger=logger)
    raw_storage = TrackerDataStorage(config.storage.data_dir)

    fetcher = TrackerDataFetcher(
        http_client=ETagDecorator(http_client, ETagStorage(store, logger=logger), logger=logger),
        tracker_data_url=config.fetch.url,
        storage=raw_storage,
        logger=logger,
    )
    rule_cache = create_rule_cache(config, logger)
    content_blocker = ContentBlocker(
        store=FileContentRuleListStore(config.storage.rules_output_dir),
        allowlist_manager=allowlist_manager,
        logger=logger,
    )

    orchestrator = RulesOrchestrator(
        fetcher=fetcher,
        generator=TrackerRulesGenerator(raw_storage, logger=logger),
        rule_cache=rule_cache,
        allowlist_manager=allowlist_manager,
        content_blocker=content_blocker,
        retry_manager=RetryManager(config.retry),
        logger=logger,
        reapply_window_seconds=config.cache.reapply_window_seconds,
        raw_storage=raw_storage,
    )

    return Pipeline(
        allowlist_manager=allowlist_manager,
        rule_cache=rule_cache,
        content_blocker=content_blocker,
        orchestrator=orchestrator,
    )


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to the configuration file

    Returns:
        SystemConfig if successful, None otherwise
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        fetch_data = data.get("fetch", {})
        fetch = FetchConfig(
            url=fetch_data.get("url", DEFAULT_TRACKER_DATA_URL),
            timeout_seconds=float(fetch_data.get("timeout_seconds", 15.0)),
        )

        retry_data = data.get("retry", {})
        retry = RetryConfig(
            max_retries=int(retry_data.get("max_retries", 2)),
            base_delay_seconds=float(retry_data.get("base_delay_seconds", 1.0)),
            max_delay_seconds=float(retry_data.get("max_delay_seconds", 30.0)),
        )
        if "retryable_errors" in retry_data:
            retry.retryable_errors = list(retry_data["retryable_errors"])

        storage_data = data.get("storage", {})
        data_dir = storage_data.get("data_dir")
        storage = StorageConfig(
            data_dir=Path(data_dir).expanduser() if data_dir else DEFAULT_DATA_DIR,
            hmac_secret=storage_data.get("hmac_secret"),
        )

        cache_defaults = CacheConfig()
        cache_data = data.get("cache", {})
        cache = CacheConfig(
            max_cache_duration_seconds=float(cache_data.get(
                "max_cache_duration_seconds", cache_defaults.max_cache_duration_seconds
            )),
            reapply_window_seconds=float(cache_data.get(
                "reapply_window_seconds", cache_defaults.reapply_window_seconds
            )),
        )

        logging_data = data.get("logging", {})
        logging_config = LoggingConfig(
            level=logging_data.get("level", "info"),
            output_format=logging_data.get("output_format", "text"),
        )

        return SystemConfig(
            fetch=fetch,
            retry=retry,
            storage=storage,
            cache=cache,
            logging=logging_config,
        )

    except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None
    except FileNotFoundError:
        return None


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file.

    Args:
        config: SystemConfig to save
        config_path: Path to save the configuration

    Returns:
        True if successful, False otherwise
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "fetch": {
                "url": config.fetch.url,
                "timeout_seconds": config.fetch.timeout_seconds,
            },
            "retry": {
                "max_retries": config.retry.max_retries,
                "base_delay_seconds": config.retry.base_delay_seconds,
                "max_delay_seconds": config.retry.max_delay_seconds,
                "retryable_errors": config.retry.retryable_errors,
            },
            "storage": {
                "data_dir": str(config.storage.data_dir),
                "hmac_secret": config.storage.hmac_secret,
            },
            "cache": {
                "max_cache_duration_seconds": config.cache.max_cache_duration_seconds,
                "reapply_window_seconds": config.cache.reapply_window_seconds,
            },
            "logging": {
                "level": config.logging.level,
                "output_format": config.logging.output_format,
            },
        }

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        return True

    except (OSError, TypeError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False


def resolve_config(args: argparse.Namespace) -> Optional[SystemConfig]:
    """Load the --config file if given, otherwise build from the environment."""
    if getattr(args, "config", None):
        config = load_config_from_file(Path(args.config))
        if config is None:
            print(f"Error: Could not load config from {args.config}", file=sys.stderr)
        return config
    return create_default_config()


def print_result(result: PipelineResult, verbose: bool = False) -> None:
    print(f"Status: {result.status.value}")
    if result.source is not None:
        print(f"  Source: {result.source.value}")
    if result.rule_list_identifier:
        print(f"  Rule list: {result.rule_list_identifier}")
    if result.etag:
        print(f"  ETag: {result.etag}")
    if verbose and result.rules_json is not None:
        print(f"  Rules: {len(json.loads(result.rules_json))}")
    if result.errors:
        print("  Errors:")
        for error in result.errors:
            print(f"    - {error}")


async def run_refresh(
    config: SystemConfig,
    output_file: Optional[Path] = None,
    host: Optional[str] = None,
    verbose: bool = False,
) -> int:
    """
    Load cached rules, refresh from the network, and apply.

    Args:
        config: System configuration
        output_file: Optional path to write the compiled rules JSON
        host: Optional page host checked against the allowlist
        verbose: Enable verbose output

    Returns:
        Exit code (0 if rules were applied, 1 otherwise)
    """
    logger = create_logger(config, verbose)

    async with HttpxClient(timeout=config.fetch.timeout_seconds, logger=logger) as http_client:
        pipeline = build_pipeline(config, http_client, logger)
        result = await pipeline.orchestrator.load_blocking_rules(host=host)

    print_result(result, verbose)

    if output_file and result.rules_json is not None:
        try:
            output_file.parent.mkdir(parents=True, exist_ok=True)
            output_file.write_text(result.rules_json, encoding="utf-8")
            print(f"Rules written to: {output_file}")
        except OSError as e:
            print(f"Error writing rules: {e}", file=sys.stderr)
            return 1

    return 0 if result.applied else 1


def cmd_refresh(args: argparse.Namespace) -> int:
    """Handle the 'refresh' command."""
    config = resolve_config(args)
    if config is None:
        return 1

    output_file = Path(args.output) if args.output else None

    return asyncio.run(run_refresh(
        config=config,
        output_file=output_file,
        host=args.allowlist_host,
        verbose=args.verbose,
    ))


def cmd_show_cache(args: argparse.Namespace) -> int:
    """Handle the 'show-cache' command."""
    config = resolve_config(args)
    if config is None:
        return 1

    rule_cache = create_rule_cache(config, create_logger(config, args.verbose))
    snapshot = rule_cache.get_most_recent_rules()
    if snapshot is None:
        print(f"No cached rules in: {rule_cache.cache_dir}")
        return 1

    age = rule_cache.age_of(snapshot)
    expired = age >= rule_cache.max_cache_duration
    stored_at = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(snapshot.timestamp))

    print(f"Cached rules in: {rule_cache.cache_dir}")
    print(f"  Stored: {stored_at} ({age:.0f}s ago)")
    print(f"  ETag: {snapshot.etag or '-'}")
    print(f"  Size: {len(snapshot.rules_json)} bytes")
    print(f"  Expired: {expired}")
    return 0


def cmd_clear_cache(args: argparse.Namespace) -> int:
    """Handle the 'clear-cache' command."""
    config = resolve_config(args)
    if config is None:
        return 1

    rule_cache = create_rule_cache(config, create_logger(config, args.verbose))
    rule_cache.clear_cache()
    print(f"Cache cleared: {rule_cache.cache_dir}")
    return 0


def cmd_allowlist(args: argparse.Namespace) -> int:
    """Handle the 'allowlist' command."""
    config = resolve_config(args)
    if config is None:
        return 1

    manager = create_allowlist_manager(config, create_logger(config, args.verbose))

    if args.action == "list":
        for domain in sorted(manager.get_allowlist()):
            print(domain)
        return 0

    if not args.domain:
        print(f"Error: 'allowlist {args.action}' requires a domain", file=sys.stderr)
        return 1

    try:
        if args.action == "add":
            manager.add_to_allowlist(args.domain)
            print(f"Added to allowlist: {args.domain}")
        elif args.action == "remove":
            manager.remove_from_allowlist(args.domain)
            print(f"Removed from allowlist: {args.domain}")
        elif args.action == "toggle":
            if manager.toggle_allowlist(args.domain):
                print(f"Protection disabled for: {args.domain}")
            else:
                print(f"Protection enabled for: {args.domain}")
    except TrackerRulesError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_PATH

    if args.action == "show":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return 1

        print(f"Configuration from: {config_path}")
        print(f"  Dataset URL: {config.fetch.url}")
        print(f"  Timeout: {config.fetch.timeout_seconds}s")
        print(f"  Retries: {config.retry.max_retries}")
        print(f"  Data dir: {config.storage.data_dir}")
        print(f"  HMAC protection: {config.storage.hmac_secret is not None}")
        print(f"  Cache duration: {config.cache.max_cache_duration_seconds:.0f}s")
        print(f"  Reapply window: {config.cache.reapply_window_seconds:.0f}s")
        print(f"  Log level: {config.logging.level}")
        return 0

    elif args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1

        config = create_default_config()
        if save_config_to_file(config, config_path):
            print(f"Configuration created at: {config_path}")
            return 0
        return 1

    elif args.action == "validate":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"Error: Could not load config from {config_path}", file=sys.stderr)
            return 1

        print(f"Configuration at {config_path} is valid.")
        return 0

    return 1


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="tracker-rules",
        description="Fetch the tracker dataset and maintain compiled content blocking rules",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'refresh' command
    refresh_parser = subparsers.add_parser(
        "refresh",
        help="Fetch tracker data and apply compiled rules",
    )
    refresh_parser.add_argument(
        "--output", "-o",
        help="Path to write the compiled rules JSON",
    )
    refresh_parser.add_argument(
        "--allowlist-host",
        help="Page host; no rules are applied if it is allowlisted",
    )
    _add_common_arguments(refresh_parser)
    refresh_parser.set_defaults(func=cmd_refresh)

    # 'show-cache' command
    show_cache_parser = subparsers.add_parser(
        "show-cache",
        help="Show the cached rule snapshot",
    )
    _add_common_arguments(show_cache_parser)
    show_cache_parser.set_defaults(func=cmd_show_cache)

    # 'clear-cache' command
    clear_cache_parser = subparsers.add_parser(
        "clear-cache",
        help="Delete the cached rule snapshot",
    )
    _add_common_arguments(clear_cache_parser)
    clear_cache_parser.set_defaults(func=cmd_clear_cache)

    # 'allowlist' command
    allowlist_parser = subparsers.add_parser(
        "allowlist",
        help="Manage domains exempted from blocking",
    )
    allowlist_parser.add_argument(
        "action",
        choices=["list", "add", "remove", "toggle"],
        help="Allowlist action",
    )
    allowlist_parser.add_argument(
        "domain",
        nargs="?",
        help="Domain (e.g., example.com)",
    )
    _add_common_arguments(allowlist_parser)
    allowlist_parser.set_defaults(func=cmd_allowlist)

    # 'config' command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--path", "-p",
        help="Path to configuration file",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
