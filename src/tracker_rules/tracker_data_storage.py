"""
Raw dataset storage for the last-known-good tracker dataset.

The dataset is kept as a single file that is replaced atomically on every
successful save, so an interrupted write never leaves a partial dataset.
"""

from abc import abstractmethod
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from .enums import PersistenceErrorCode
from .exceptions import PersistenceError
from .kv_store import atomic_write_bytes


@runtime_checkable
class TrackerDataStorageProtocol(Protocol):
    """Protocol for raw tracker dataset persistence."""

    @abstractmethod
    def save(self, data: bytes) -> None:
        """Replace the stored dataset. Raises PersistenceError on failure."""
        ...

    @abstractmethod
    def load(self) -> Optional[bytes]:
        """Return the stored dataset, None if absent. Raises PersistenceError on read failure."""
        ...


class TrackerDataStorage:
    """File-backed raw dataset store."""

    STORAGE_FILENAME = "tracker_data.json"

    def __init__(self, directory: Path) -> None:
        """
        Initialize the storage.

        Args:
            directory: Directory holding the dataset file (created on first save)
        """
        self._directory = directory

    @property
    def file_path(self) -> Path:
        return self._directory / self.STORAGE_FILENAME

    def save(self, data: bytes) -> None:
        try:
            atomic_write_bytes(self.file_path, data)
        except OSError as e:
            raise PersistenceError(
                code=PersistenceErrorCode.IO_ERROR.value,
                message=f"Failed to save tracker dataset: {e}",
                details={"file_path": str(self.file_path)},
            )

    def load(self) -> Optional[bytes]:
        if not self.file_path.exists():
            return None

        try:
            return self.file_path.read_bytes()
        except OSError as e:
            raise PersistenceError(
                code=PersistenceErrorCode.IO_ERROR.value,
                message=f"Failed to load tracker dataset: {e}",
                details={"file_path": str(self.file_path)},
            )


class InMemoryTrackerDataStorage:
    """Dataset store kept in memory; used for tests and dry runs."""

    def __init__(self, data: Optional[bytes] = None) -> None:
        self._data = data

    def save(self, data: bytes) -> None:
        self._data = bytes(data)

    def load(self) -> Optional[bytes]:
        return self._data
