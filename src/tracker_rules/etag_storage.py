"""
ETag storage keyed by canonical request URL.

One value per URL, last write wins. Values are stored already cleaned
(weak indicator and quotes stripped) by the ETag decorator.
"""

from abc import abstractmethod
from typing import Optional, Protocol, runtime_checkable

from .audit_logger import AuditLogger
from .exceptions import PersistenceError
from .kv_store import KeyValueStore


@runtime_checkable
class ETagStorageProtocol(Protocol):
    """Protocol for per-URL ETag persistence."""

    @abstractmethod
    def store_etag(self, etag: str, key: str) -> None:
        ...

    @abstractmethod
    def retrieve_etag(self, key: str) -> Optional[str]:
        ...


class ETagStorage:
    """ETag persistence on top of an injected key-value store."""

    KEY_PREFIX = "etag:"

    def __init__(self, store: KeyValueStore, logger: Optional[AuditLogger] = None) -> None:
        self._store = store
        self._logger = logger

    def store_etag(self, etag: str, key: str) -> None:
        """
        Persist an ETag for a URL, overwriting any previous value.

        Storage failures are logged and dropped: a lost ETag only costs a
        full download on the next fetch.
        """
        try:
            self._store.set(self.KEY_PREFIX + key, etag)
        except PersistenceError as e:
            if self._logger:
                self._logger.log_error("ETagStorage", "Failed to store ETag", error=e, request_url=key)

    def retrieve_etag(self, key: str) -> Optional[str]:
        """Return the stored ETag for a URL, or None."""
        try:
            return self._store.get(self.KEY_PREFIX + key)
        except PersistenceError as e:
            if self._logger:
                self._logger.log_error("ETagStorage", "Failed to read ETag", error=e, request_url=key)
            return None
