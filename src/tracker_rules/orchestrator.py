"""
Rules Orchestrator for the tracker rules pipeline.

This module coordinates all components that turn the remote tracker dataset
into an applied rule list:
- Cached rules applied immediately at startup
- Conditional fetch with retry for transient errors
- Rule generation off the event loop
- Rule cache persistence
- Hand-off to the content blocker
- Fast regeneration after allowlist changes

A failed run never replaces rules that are already applied.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .allowlist_manager import AllowlistManager
from .audit_logger import AuditLogger
from .config import DEFAULT_REAPPLY_WINDOW_SECONDS
from .content_blocker import ContentBlocker
from .domain_validator import normalize_domain
from .enums import PipelineStatus, RuleSource
from .exceptions import (
    PersistenceError,
    PipelineCancelledError,
    RuleGenerationError,
    RuleListCompilationError,
    ValidationError,
)
from .retry_manager import RetryManager
from .rule_cache import RuleCache
from .rules_generator import TrackerRulesGenerator
from .tracker_data_fetcher import TrackerDataFetcher
from .tracker_data_storage import TrackerDataStorageProtocol


class CancellationToken:
    """Cooperative cancellation flag checked between pipeline stages."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise PipelineCancelledError(
                code="cancelled",
                message="Pipeline run was cancelled",
            )


@dataclass
class PipelineResult:
    """Result of an orchestrated pipeline run."""

    status: PipelineStatus
    source: Optional[RuleSource] = None
    rules_json: Optional[str] = None
    etag: Optional[str] = None
    rule_list_identifier: Optional[str] = None
    errors: list[str] = field(default_factory=list)

    @property
    def applied(self) -> bool:
        return self.status is PipelineStatus.APPLIED


class RulesOrchestrator:
    """
    Main orchestrator for loading, refreshing, and reapplying tracker rules.

    Only one refresh runs at a time; a refresh requested while another is
    in flight is skipped.
    """

    def __init__(
        self,
        fetcher: TrackerDataFetcher,
        generator: TrackerRulesGenerator,
        rule_cache: RuleCache,
        allowlist_manager: AllowlistManager,
        content_blocker: ContentBlocker,
        retry_manager: RetryManager,
        logger: Optional[AuditLogger] = None,
        reapply_window_seconds: float = DEFAULT_REAPPLY_WINDOW_SECONDS,
        raw_storage: Optional[TrackerDataStorageProtocol] = None,
    ) -> None:
        """
        Initialize the rules orchestrator.

        Args:
            fetcher: Tracker dataset fetcher
            generator: Rule generator
            rule_cache: Compiled rule cache
            allowlist_manager: Allowlist source
            content_blocker: Rule engine hand-off
            retry_manager: Retry policy for fetches
            logger: Optional audit logger
            reapply_window_seconds: Max snapshot age for regeneration without a fetch
            raw_storage: Stored raw dataset used for regeneration without a fetch
        """
        self._fetcher = fetcher
        self._generator = generator
        self._rule_cache = rule_cache
        self._allowlist_manager = allowlist_manager
        self._content_blocker = content_blocker
        self._retry_manager = retry_manager
        self._logger = logger
        self._reapply_window = reapply_window_seconds
        self._raw_storage = raw_storage
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def load_blocking_rules(
        self,
        token: Optional[CancellationToken] = None,
        host: Optional[str] = None,
    ) -> PipelineResult:
        """
        Apply cached rules right away, then refresh from the network.

        Args:
            token: Optional cancellation token
            host: Optional page host checked against the allowlist on apply

        Returns:
            Result of the network refresh. If the refresh fails after cached
            rules were applied, the result is failed with source cache and
            describes the cached rules that stay in force.
        """
        token = token or CancellationToken()

        cached = self._rule_cache.get_cached_rules()
        cached_applied = False
        cached_identifier: Optional[str] = None
        if cached is not None:
            self._log("info", "Applying cached rules", {"etag": cached.etag})
            try:
                cached_identifier = self._content_blocker.compile_and_apply(
                    cached.rules_json, cached.etag, host
                )
                cached_applied = True
            except RuleListCompilationError as e:
                self._log_error("Cached rules could not be applied", e)
        else:
            self._log("debug", "No usable cached rules")

        if token.cancelled:
            return self._cancelled_result()

        result = await self.refresh_rules(token, host)

        if result.status is PipelineStatus.FAILED and cached_applied:
            return PipelineResult(
                status=PipelineStatus.FAILED,
                source=RuleSource.CACHE,
                rules_json=cached.rules_json,
                etag=cached.etag,
                rule_list_identifier=cached_identifier,
                errors=result.errors,
            )
        return result

    async def refresh_rules(
        self,
        token: Optional[CancellationToken] = None,
        host: Optional[str] = None,
    ) -> PipelineResult:
        """
        Fetch, generate, cache, and apply rules.

        Returns:
            PipelineResult; status is skipped if a refresh is already running
        """
        if self._in_flight:
            self._log("info", "Refresh already in progress, skipping")
            return PipelineResult(status=PipelineStatus.SKIPPED)

        self._in_flight = True
        try:
            return await self._refresh(token or CancellationToken(), host)
        except PipelineCancelledError:
            return self._cancelled_result()
        finally:
            self._in_flight = False

    async def _refresh(self, token: CancellationToken, host: Optional[str]) -> PipelineResult:
        retry_result = await self._retry_manager.execute_with_retry(
            self._fetcher.fetch_tracker_data,
            is_retryable=self._retry_manager.is_retryable_exception,
            should_continue=lambda: not token.cancelled,
        )

        token.raise_if_cancelled()

        if not retry_result.success:
            self._log_error(
                f"Fetching tracker data failed after {retry_result.attempts} attempt(s)",
                retry_result.last_error,
            )
            return self._failed_result(retry_result.last_error)

        dataset = retry_result.result
        allowlist = self._allowlist_manager.get_allowlist()

        try:
            rules_json = await asyncio.to_thread(
                self._generator.generate_rules, dataset.data, allowlist
            )
        except RuleGenerationError as e:
            self._log_error("Rule generation failed", e)
            return self._failed_result(e)

        token.raise_if_cancelled()

        return self._store_and_apply(rules_json, dataset.etag, RuleSource.NETWORK, host)

    async def reapply_for_allowlist_change(
        self,
        additional_blocked: Optional[Iterable[str]] = None,
        token: Optional[CancellationToken] = None,
        host: Optional[str] = None,
    ) -> PipelineResult:
        """
        Regenerate rules after the allowlist changed.

        If the newest cached snapshot is younger than the reapply window and
        a raw dataset is stored, rules are regenerated locally with the
        current allowlist minus additional_blocked. Otherwise a full refresh
        runs.

        Args:
            additional_blocked: Domains to block even if allowlisted
            token: Optional cancellation token
            host: Optional page host checked against the allowlist on apply

        Returns:
            PipelineResult with source reapplied, or the refresh result
        """
        token = token or CancellationToken()

        snapshot = self._rule_cache.get_most_recent_rules()
        if snapshot is None or self._rule_cache.age_of(snapshot) >= self._reapply_window:
            self._log("info", "No recent rules, running full refresh")
            return await self.refresh_rules(token, host)

        stored = self._load_raw_dataset()
        if stored is None:
            self._log("info", "No stored dataset, running full refresh")
            return await self.refresh_rules(token, host)

        allowlist = self._allowlist_manager.get_allowlist() - self._canonical_set(additional_blocked)

        try:
            rules_json = await asyncio.to_thread(self._generator.generate_rules, stored, allowlist)
            token.raise_if_cancelled()
        except RuleGenerationError as e:
            self._log_error("Rule regeneration failed", e)
            return self._failed_result(e)
        except PipelineCancelledError:
            return self._cancelled_result()

        return self._store_and_apply(rules_json, snapshot.etag, RuleSource.REAPPLIED, host)

    def _store_and_apply(
        self,
        rules_json: str,
        etag: Optional[str],
        source: RuleSource,
        host: Optional[str],
    ) -> PipelineResult:
        errors: list[str] = []

        try:
            self._rule_cache.store_cached_rules(rules_json, etag)
        except PersistenceError as e:
            self._log_error("Failed to store rules in cache", e)
            errors.append(str(e))

        try:
            identifier = self._content_blocker.compile_and_apply(rules_json, etag, host)
        except RuleListCompilationError as e:
            self._log_error("Failed to apply rules", e)
            return self._failed_result(e, errors)

        self._log(
            "info",
            "Rules applied",
            {"source": source.value, "etag": etag, "identifier": identifier},
        )
        return PipelineResult(
            status=PipelineStatus.APPLIED,
            source=source,
            rules_json=rules_json,
            etag=etag,
            rule_list_identifier=identifier,
            errors=errors,
        )

    def _load_raw_dataset(self) -> Optional[bytes]:
        if self._raw_storage is None:
            return None
        try:
            return self._raw_storage.load()
        except PersistenceError as e:
            self._log_error("Failed to load stored dataset", e)
            return None

    def _canonical_set(self, domains: Optional[Iterable[str]]) -> set[str]:
        canonical: set[str] = set()
        for domain in domains or []:
            try:
                canonical.add(normalize_domain(domain))
            except ValidationError as e:
                self._log("warn", "Ignoring invalid domain", {"domain": domain, "error_code": e.code})
        return canonical

    def _cancelled_result(self) -> PipelineResult:
        self._log("info", "Pipeline run cancelled")
        return PipelineResult(status=PipelineStatus.CANCELLED)

    def _failed_result(
        self,
        error: Optional[Exception],
        errors: Optional[list[str]] = None,
    ) -> PipelineResult:
        errors = list(errors or [])
        if error is not None:
            errors.append(str(error))
        return PipelineResult(status=PipelineStatus.FAILED, errors=errors)

    def _log(self, level: str, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            getattr(self._logger, level)("RulesOrchestrator", message, data)

    def _log_error(self, message: str, error: Optional[Exception]) -> None:
        if self._logger:
            self._logger.log_error("RulesOrchestrator", message, error=error)
