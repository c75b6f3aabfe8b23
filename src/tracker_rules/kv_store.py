"""
Key-value store module for small persistent records.

The ETag store and the allowlist manager persist through a KeyValueStore
handle injected at construction, so independent pipelines never share state.
The file-backed store keeps everything in one JSON document, rewritten as a
whole on every change, with optional HMAC protection against tampering.
"""

import hashlib
import hmac
import json
import os
import tempfile
from abc import abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from .enums import PersistenceErrorCode
from .exceptions import PersistenceError, TamperingError


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol defining a string key to string value store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value for key, or None if absent."""
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key if present."""
        ...

    @abstractmethod
    def keys(self) -> list[str]:
        """Return all stored keys."""
        ...


class InMemoryKeyValueStore:
    """Dictionary-backed store for tests and ephemeral runs."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


def atomic_write_bytes(path: Path, payload: bytes) -> None:
    """
    Write payload to path via a temporary file and an atomic replace.

    Raises:
        OSError: If the file cannot be written
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
        tmp_path.replace(path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


class JsonFileKeyValueStore:
    """
    File-backed key-value store with optional HMAC protection.

    The whole document is loaded lazily on first access and rewritten
    atomically on every mutation.
    """

    VERSION = 1

    def __init__(self, file_path: Path, hmac_secret: Optional[str] = None) -> None:
        """
        Initialize the store.

        Args:
            file_path: Path to the JSON document
            hmac_secret: Secret key for HMAC computation; None disables protection
        """
        self._file_path = file_path
        self._hmac_secret = hmac_secret.encode("utf-8") if hmac_secret else None
        self._entries: Optional[dict[str, str]] = None

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        entries = dict(self._load())
        entries[key] = value
        self._save(entries)

    def delete(self, key: str) -> None:
        entries = self._load()
        if key not in entries:
            return
        entries = dict(entries)
        del entries[key]
        self._save(entries)

    def keys(self) -> list[str]:
        return list(self._load())

    def reload(self) -> None:
        """Drop the in-memory copy so the next access re-reads the file."""
        self._entries = None

    def _load(self) -> dict[str, str]:
        """
        Load entries from disk and validate the HMAC.

        Raises:
            TamperingError: If HMAC validation fails
            PersistenceError: If the file cannot be read or parsed
        """
        if self._entries is not None:
            return self._entries

        if not self._file_path.exists():
            self._entries = {}
            return self._entries

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                raw_data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise PersistenceError(
                code=PersistenceErrorCode.PARSE_ERROR.value,
                message=f"Failed to parse store file: {e}",
                details={"file_path": str(self._file_path)},
            )
        except OSError as e:
            raise PersistenceError(
                code=PersistenceErrorCode.IO_ERROR.value,
                message=f"Failed to read store file: {e}",
                details={"file_path": str(self._file_path)},
            )

        entries = raw_data.get("entries") if isinstance(raw_data, dict) else None
        if not isinstance(entries, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in entries.items()
        ):
            raise PersistenceError(
                code=PersistenceErrorCode.PARSE_ERROR.value,
                message="Store file does not contain a string mapping",
                details={"file_path": str(self._file_path)},
            )

        if self._hmac_secret is not None:
            stored_hmac = raw_data.get("hmac", "")
            computed_hmac = self.compute_hmac(entries)
            if not hmac.compare_digest(str(stored_hmac), computed_hmac):
                raise TamperingError(
                    code=PersistenceErrorCode.HMAC_MISMATCH.value,
                    message="HMAC validation failed - data may have been tampered with",
                    details={"file_path": str(self._file_path)},
                )

        self._entries = entries
        return self._entries

    def _save(self, entries: dict[str, str]) -> None:
        """
        Write all entries to disk.

        Raises:
            PersistenceError: If the file cannot be written
        """
        output_data: dict = {
            "version": self.VERSION,
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "entries": entries,
        }
        if self._hmac_secret is not None:
            output_data["hmac"] = self.compute_hmac(entries)

        payload = json.dumps(output_data, indent=2, sort_keys=True).encode("utf-8")
        try:
            atomic_write_bytes(self._file_path, payload)
        except OSError as e:
            raise PersistenceError(
                code=PersistenceErrorCode.IO_ERROR.value,
                message=f"Failed to write store file: {e}",
                details={"file_path": str(self._file_path)},
            )

        self._entries = entries

    def compute_hmac(self, entries: dict[str, str]) -> str:
        """
        Compute HMAC-SHA256 over the serialized entries.

        Args:
            entries: Mapping to compute the HMAC over

        Returns:
            Hexadecimal HMAC string
        """
        if self._hmac_secret is None:
            raise PersistenceError(
                code="no_secret",
                message="HMAC secret not configured",
            )
        serialized = json.dumps(entries, sort_keys=True, separators=(",", ":"))
        return hmac.new(
            self._hmac_secret,
            serialized.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    @property
    def file_path(self) -> Path:
        """Get the store file path."""
        return self._file_path
