"""
Allowlist Manager.

Durable set of domains on which tracker blocking is disabled. The whole set
is persisted under a single key on every mutation (read-modify-write), as a
sorted JSON list.
"""

import json
from typing import Optional

from .audit_logger import AuditLogger
from .domain_validator import normalize_domain
from .exceptions import PersistenceError, ValidationError
from .kv_store import KeyValueStore


ALLOWLIST_KEY = "website_allowlist"


class AllowlistManager:
    """Set semantics over canonical domain strings, backed by a key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        key: str = ALLOWLIST_KEY,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._store = store
        self._key = key
        self._logger = logger

    def is_allowlisted(self, domain: str) -> bool:
        """
        Return True if the domain is allowlisted.

        Input that is not a valid domain is never allowlisted.
        """
        try:
            canonical = normalize_domain(domain)
        except ValidationError as e:
            if self._logger:
                self._logger.debug(
                    "AllowlistManager",
                    "Invalid domain treated as not allowlisted",
                    {"domain": domain, "error_code": e.code},
                )
            return False
        return canonical in self.get_allowlist()

    def add_to_allowlist(self, domain: str) -> None:
        allowlist = self.get_allowlist()
        allowlist.add(normalize_domain(domain))
        self._save_allowlist(allowlist)

    def remove_from_allowlist(self, domain: str) -> None:
        allowlist = self.get_allowlist()
        allowlist.discard(normalize_domain(domain))
        self._save_allowlist(allowlist)

    def toggle_allowlist(self, domain: str) -> bool:
        """
        Flip a domain's allowlist membership.

        Returns:
            True if the domain was just added (protection disabled),
            False if it was just removed (protection enabled)
        """
        was_allowlisted = self.is_allowlisted(domain)

        if was_allowlisted:
            self.remove_from_allowlist(domain)
        else:
            self.add_to_allowlist(domain)

        return not was_allowlisted

    def get_allowlist(self) -> set[str]:
        """Return a snapshot of the allowlist; unreadable data reads as empty."""
        try:
            raw = self._store.get(self._key)
        except PersistenceError as e:
            self._warn("Could not read allowlist", e)
            return set()

        if raw is None:
            return set()

        try:
            values = json.loads(raw)
        except json.JSONDecodeError as e:
            self._warn("Stored allowlist is not valid JSON", e)
            return set()

        if not isinstance(values, list):
            return set()
        return {v for v in values if isinstance(v, str)}

    def _save_allowlist(self, allowlist: set[str]) -> None:
        """
        Raises:
            PersistenceError: If the store cannot be written
        """
        self._store.set(self._key, json.dumps(sorted(allowlist)))
        if self._logger:
            self._logger.debug("AllowlistManager", "Saved allowlist", {"size": len(allowlist)})

    def _warn(self, message: str, error: Exception) -> None:
        if self._logger:
            self._logger.warn(
                "AllowlistManager",
                message,
                {"error_message": str(error), "error_type": type(error).__name__},
            )
