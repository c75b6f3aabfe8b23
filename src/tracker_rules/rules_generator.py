"""
Tracker Rules Generator.

Turns raw dataset bytes plus an allowlist into the compiled rule list JSON.
If the given bytes do not decode, the last stored dataset is decoded
instead; only when that also fails does generation raise.
"""

import json
from typing import Iterable, Optional

from .audit_logger import AuditLogger
from .enums import RuleGenerationErrorCode
from .exceptions import DatasetDecodeError, PersistenceError, RuleGenerationError
from .rules_builder import ContentBlockerRulesBuilder
from .tracker_data import TrackerData, decode_tracker_data
from .tracker_data_storage import TrackerDataStorageProtocol


EMPTY_RULE_LIST = "[]"


class TrackerRulesGenerator:
    """Generate compiled rule JSON with stored-dataset fallback."""

    def __init__(
        self,
        storage: TrackerDataStorageProtocol,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._storage = storage
        self._logger = logger

    def generate_rules(self, data: bytes, allowlist: Iterable[str]) -> str:
        """
        Generate the compiled rule list.

        Args:
            data: Raw tracker dataset bytes
            allowlist: Domains (or entity names) exempted from blocking

        Returns:
            Rule list JSON string

        Raises:
            RuleGenerationError: fallback_not_available if the bytes do not
                decode and nothing is stored; decoding_failed if the stored
                dataset does not decode either
        """
        allowlist = set(allowlist)

        self._log_info("Attempting to decode tracker data", {"bytes": len(data)})
        try:
            tracker_data = decode_tracker_data(data)
        except DatasetDecodeError as e:
            self._log_error("Failed to decode primary tracker dataset", e)
        else:
            rules = self.convert_to_rule_list(tracker_data, allowlist)
            self._log_info("Generated rules from primary dataset", {"allowlisted": len(allowlist)})
            return rules

        try:
            stored = self._storage.load()
        except PersistenceError as e:
            self._log_error("Failed to load fallback dataset", e)
            stored = None

        if stored is None:
            if self._logger:
                self._logger.error("TrackerRulesGenerator", "No valid tracker data available")
            raise RuleGenerationError(
                code=RuleGenerationErrorCode.FALLBACK_NOT_AVAILABLE.value,
                message="Tracker dataset did not decode and no stored dataset exists",
            )

        self._log_info("Loading fallback dataset from storage", {"bytes": len(stored)})
        try:
            tracker_data = decode_tracker_data(stored)
        except DatasetDecodeError as e:
            self._log_error("Failed to decode fallback tracker dataset", e)
            raise RuleGenerationError(
                code=RuleGenerationErrorCode.DECODING_FAILED.value,
                message="Neither the given nor the stored tracker dataset could be decoded",
                details={"cause": e.message},
            )

        rules = self.convert_to_rule_list(tracker_data, allowlist)
        self._log_info("Generated rules from fallback dataset", {"allowlisted": len(allowlist)})
        return rules

    def convert_to_rule_list(self, tracker_data: TrackerData, allowlist: Iterable[str]) -> str:
        """Compile decoded tracker data into rule list JSON. Never raises."""
        rules = ContentBlockerRulesBuilder(tracker_data).build_rules(exceptions=allowlist)
        if not rules:
            return EMPTY_RULE_LIST

        try:
            return json.dumps([rule.to_dict() for rule in rules])
        except (TypeError, ValueError) as e:
            self._log_error("Failed to serialize rules", e)
            return EMPTY_RULE_LIST

    def _log_info(self, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.info("TrackerRulesGenerator", message, data)

    def _log_error(self, message: str, error: Exception) -> None:
        if self._logger:
            self._logger.log_error("TrackerRulesGenerator", message, error=error)
