"""
Content Blocker.

Hands compiled rule list JSON to a rule engine store under a deterministic
identifier and tracks which list is currently applied. Pages whose host is
allowlisted get no rule list at all.
"""

import json
from abc import abstractmethod
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from .allowlist_manager import AllowlistManager
from .audit_logger import AuditLogger
from .etag_decorator import clean_etag
from .exceptions import RuleListCompilationError
from .kv_store import atomic_write_bytes


IDENTIFIER_PREFIX = "TrackerRules_"

_INT64_MASK = (1 << 64) - 1
_INT64_SIGN = 1 << 63


def rules_hash(rules_json: str) -> int:
    """31-multiplier rolling hash over code points, wrapped to signed 64 bits."""
    h = 0
    for char in rules_json:
        h = (h * 31 + ord(char)) & _INT64_MASK
    if h & _INT64_SIGN:
        h -= 1 << 64
    return h


def generate_rule_list_identifier(rules_json: str, etag: Optional[str]) -> str:
    """
    Derive the identifier a rule list is compiled under.

    The rules text is always part of the identifier: rules generated from one
    dataset version differ with the allowlist, so the ETag alone does not
    name a single rule list.

    Args:
        rules_json: Compiled rule list JSON
        etag: Dataset ETag, if known

    Returns:
        "TrackerRules_<etag>_hash_<n>" when an ETag is present, otherwise
        "TrackerRules_hash_<n>", with n derived from the rules text
    """
    content = f"hash_{abs(rules_hash(rules_json))}"
    if etag:
        cleaned = clean_etag(etag)
        if cleaned:
            return f"{IDENTIFIER_PREFIX}{cleaned}_{content}"
    return f"{IDENTIFIER_PREFIX}{content}"


@runtime_checkable
class ContentRuleListStore(Protocol):
    """Rule engine store that compiles and holds rule lists by identifier."""

    @abstractmethod
    def lookup(self, identifier: str) -> bool:
        """Return True if a list with this identifier is already compiled."""
        ...

    @abstractmethod
    def compile(self, identifier: str, rules_json: str) -> None:
        """
        Compile a rule list.

        Raises:
            RuleListCompilationError: If the rules are rejected
        """
        ...

    @abstractmethod
    def remove(self, identifier: str) -> None:
        """Remove a compiled list; unknown identifiers are ignored."""
        ...


def validate_rule_list(rules_json: str) -> list:
    """
    Parse rule list JSON and check each entry has the trigger/action shape.

    Raises:
        RuleListCompilationError: If the JSON or any rule is malformed
    """
    try:
        rules = json.loads(rules_json)
    except json.JSONDecodeError as e:
        raise RuleListCompilationError(
            code="invalid_json",
            message=f"Rule list is not valid JSON: {e}",
        )

    if not isinstance(rules, list):
        raise RuleListCompilationError(
            code="invalid_shape",
            message="Rule list must be a JSON array",
        )

    for index, rule in enumerate(rules):
        trigger = rule.get("trigger") if isinstance(rule, dict) else None
        action = rule.get("action") if isinstance(rule, dict) else None
        if (
            not isinstance(trigger, dict)
            or not isinstance(trigger.get("url-filter"), str)
            or not isinstance(action, dict)
            or not isinstance(action.get("type"), str)
        ):
            raise RuleListCompilationError(
                code="invalid_rule",
                message=f"Rule {index} is missing trigger.url-filter or action.type",
                details={"index": index},
            )

    return rules


class InMemoryContentRuleListStore:
    """Rule list store holding compiled lists in memory."""

    def __init__(self) -> None:
        self.lists: dict[str, str] = {}
        self.compile_count = 0

    def lookup(self, identifier: str) -> bool:
        return identifier in self.lists

    def compile(self, identifier: str, rules_json: str) -> None:
        validate_rule_list(rules_json)
        self.lists[identifier] = rules_json
        self.compile_count += 1

    def remove(self, identifier: str) -> None:
        self.lists.pop(identifier, None)


class FileContentRuleListStore:
    """Rule list store writing each validated list to <identifier>.json."""

    def __init__(self, directory: Path) -> None:
        self._directory = directory

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, identifier: str) -> Path:
        return self._directory / f"{identifier}.json"

    def lookup(self, identifier: str) -> bool:
        return self.path_for(identifier).exists()

    def compile(self, identifier: str, rules_json: str) -> None:
        validate_rule_list(rules_json)
        try:
            atomic_write_bytes(self.path_for(identifier), rules_json.encode("utf-8"))
        except OSError as e:
            raise RuleListCompilationError(
                code="io_error",
                message=f"Failed to write rule list: {e}",
                details={"identifier": identifier},
            )

    def remove(self, identifier: str) -> None:
        try:
            self.path_for(identifier).unlink(missing_ok=True)
        except OSError as e:
            raise RuleListCompilationError(
                code="io_error",
                message=f"Failed to remove rule list: {e}",
                details={"identifier": identifier},
            )


class ContentBlocker:
    """Apply compiled rule lists, skipping allowlisted hosts."""

    def __init__(
        self,
        store: ContentRuleListStore,
        allowlist_manager: AllowlistManager,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._store = store
        self._allowlist_manager = allowlist_manager
        self._logger = logger
        self._applied_identifier: Optional[str] = None

    @property
    def applied_identifier(self) -> Optional[str]:
        """Identifier of the currently applied list, or None."""
        return self._applied_identifier

    def compile_and_apply(
        self,
        rules_json: str,
        etag: Optional[str],
        host: Optional[str] = None,
    ) -> Optional[str]:
        """
        Compile (or reuse) and apply a rule list.

        Args:
            rules_json: Compiled rule list JSON
            etag: Dataset ETag used to derive the identifier
            host: Page host; if allowlisted, the applied list is detached instead

        Returns:
            Identifier of the applied list, or None if the host is allowlisted

        Raises:
            RuleListCompilationError: If the store rejects the rules
        """
        if host and self._allowlist_manager.is_allowlisted(host):
            self.detach()
            self._log("info", "Host is allowlisted, rules detached", {"host": host})
            return None

        identifier = generate_rule_list_identifier(rules_json, etag)

        if self._store.lookup(identifier):
            self._log("debug", "Reusing compiled rule list", {"identifier": identifier})
        else:
            self._store.compile(identifier, rules_json)
            self._log("info", "Compiled rule list", {"identifier": identifier})

        self._applied_identifier = identifier
        return identifier

    def detach(self) -> None:
        """Stop applying the current list; the compiled list stays in the store."""
        if self._applied_identifier is not None:
            self._log("debug", "Detached rule list", {"identifier": self._applied_identifier})
        self._applied_identifier = None

    def remove_content_rule_list(self, identifier: str) -> None:
        """Delete a compiled list from the store, detaching it if applied."""
        self._store.remove(identifier)
        if self._applied_identifier == identifier:
            self._applied_identifier = None
        self._log("debug", "Removed rule list", {"identifier": identifier})

    def _log(self, level: str, message: str, data: dict) -> None:
        if self._logger:
            getattr(self._logger, level)("ContentBlocker", message, data)
