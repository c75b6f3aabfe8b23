"""
Tracker Data Fetcher.

Orchestrates one conditional fetch of the tracker dataset, persisting new
data as the last-known-good copy and serving that copy when the server
reports the dataset unchanged. Single-shot: retries belong to the caller.
"""

from typing import Optional

from .audit_logger import AuditLogger
from .enums import HTTPClientErrorCode
from .etag_decorator import ETAG_HEADER, clean_etag
from .exceptions import HTTPClientError, PersistenceError
from .http_client import HTTPClient
from .models import FetchedDataset, HTTPRequest
from .tracker_data_storage import TrackerDataStorageProtocol


class TrackerDataFetcher:
    """Fetch the tracker dataset with raw-dataset fallback on 304."""

    def __init__(
        self,
        http_client: HTTPClient,
        tracker_data_url: str,
        storage: TrackerDataStorageProtocol,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the fetcher.

        Args:
            http_client: Transport, normally an ETagDecorator
            tracker_data_url: URL of the tracker dataset
            storage: Raw dataset store used for persistence and fallback
            logger: Optional audit logger
        """
        self._http_client = http_client
        self._tracker_data_url = tracker_data_url
        self._storage = storage
        self._logger = logger

    @property
    def tracker_data_url(self) -> str:
        return self._tracker_data_url

    async def fetch_tracker_data(self) -> FetchedDataset:
        """
        Fetch the tracker dataset.

        Returns:
            FetchedDataset with the dataset bytes and the response ETag

        Raises:
            HTTPClientError: Propagated transport/HTTP errors; storage_error if
                new data could not be persisted; invalid_response if the
                server reported no change and no stored dataset exists
        """
        response = await self._http_client.get(HTTPRequest(url=self._tracker_data_url))

        raw_etag = response.header(ETAG_HEADER)
        etag = clean_etag(raw_etag) if raw_etag else None

        if response.data is not None:
            try:
                self._storage.save(response.data)
            except PersistenceError as e:
                self._log_error("Failed to persist fetched tracker dataset", e)
                raise HTTPClientError(
                    code=HTTPClientErrorCode.STORAGE_ERROR.value,
                    message="Fetched tracker dataset could not be stored",
                    details={"url": self._tracker_data_url, "cause": e.message},
                )

            self._log_info(
                "Fetched new tracker dataset",
                {"url": self._tracker_data_url, "bytes": len(response.data), "etag": etag},
            )
            return FetchedDataset(data=response.data, etag=etag)

        try:
            stored = self._storage.load()
        except PersistenceError as e:
            self._log_error("Failed to load stored tracker dataset", e)
            stored = None

        if stored is None:
            raise HTTPClientError(
                code=HTTPClientErrorCode.INVALID_RESPONSE.value,
                message="Dataset not modified but no stored dataset is available",
                details={"url": self._tracker_data_url},
            )

        self._log_info(
            "Tracker dataset not modified, using stored copy",
            {"url": self._tracker_data_url, "bytes": len(stored), "etag": etag},
        )
        return FetchedDataset(data=stored, etag=etag)

    def _log_info(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.info("TrackerDataFetcher", message, data)

    def _log_error(self, message: str, error: Exception) -> None:
        if self._logger:
            self._logger.log_error(
                "TrackerDataFetcher", message, error=error, request_url=self._tracker_data_url
            )
