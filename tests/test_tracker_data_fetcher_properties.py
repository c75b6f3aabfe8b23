"""
Property-based tests for the Tracker Data Fetcher.

Verifies that fresh data is persisted, 304 responses fall back to the stored
dataset, and failures surface with the right error codes.
"""

import asyncio
import tempfile
from pathlib import Path
from typing import Optional

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from tracker_rules.etag_decorator import ETagDecorator
from tracker_rules.etag_storage import ETagStorage
from tracker_rules.exceptions import HTTPClientError, PersistenceError
from tracker_rules.http_client import HttpxClient
from tracker_rules.kv_store import InMemoryKeyValueStore
from tracker_rules.models import FetchedDataset, HTTPRequest, HTTPResponse
from tracker_rules.tracker_data_fetcher import TrackerDataFetcher
from tracker_rules.tracker_data_storage import InMemoryTrackerDataStorage, TrackerDataStorage


URL = "https://example.test/tds.json"


class CannedHTTPClient:
    """HTTPClient returning one fixed response."""

    def __init__(self, response: Optional[HTTPResponse] = None, error: Optional[Exception] = None) -> None:
        self.response = response
        self.error = error

    async def get(self, request: HTTPRequest) -> HTTPResponse:
        if self.error is not None:
            raise self.error
        return self.response


class BrokenStorage:
    """Dataset store failing on every operation."""

    def save(self, data: bytes) -> None:
        raise PersistenceError(code="io_error", message="disk full")

    def load(self) -> Optional[bytes]:
        raise PersistenceError(code="io_error", message="unreadable")


def response(status: int, data: Optional[bytes], etag: Optional[str] = None) -> HTTPResponse:
    headers = {"ETag": etag} if etag else {}
    return HTTPResponse(url=URL, status_code=status, headers=headers, data=data)


class TestFreshDataProperty:
    """200 responses are persisted and returned."""

    @given(body=st.binary(min_size=1, max_size=256), etag=st.one_of(st.none(), st.just('W/"v1"')))
    @settings(max_examples=100)
    def test_new_data_is_stored_and_returned(self, body: bytes, etag: Optional[str]) -> None:
        storage = InMemoryTrackerDataStorage(b"old")
        fetcher = TrackerDataFetcher(CannedHTTPClient(response(200, body, etag)), URL, storage)

        result = asyncio.run(fetcher.fetch_tracker_data())

        assert result == FetchedDataset(data=body, etag="v1" if etag else None)
        assert storage.load() == body

    def test_storage_failure_is_storage_error(self) -> None:
        fetcher = TrackerDataFetcher(CannedHTTPClient(response(200, b"{}")), URL, BrokenStorage())

        with pytest.raises(HTTPClientError) as exc_info:
            asyncio.run(fetcher.fetch_tracker_data())

        assert exc_info.value.code == "storage_error"


class TestNotModifiedProperty:
    """304 responses reuse the stored dataset."""

    @given(stored=st.binary(min_size=1, max_size=256))
    @settings(max_examples=100)
    def test_not_modified_returns_stored_data(self, stored: bytes) -> None:
        storage = InMemoryTrackerDataStorage(stored)
        fetcher = TrackerDataFetcher(CannedHTTPClient(response(304, None, '"v2"')), URL, storage)

        result = asyncio.run(fetcher.fetch_tracker_data())

        assert result.data == stored
        assert result.etag == "v2"

    def test_not_modified_without_stored_data_is_invalid_response(self) -> None:
        fetcher = TrackerDataFetcher(
            CannedHTTPClient(response(304, None)), URL, InMemoryTrackerDataStorage()
        )

        with pytest.raises(HTTPClientError) as exc_info:
            asyncio.run(fetcher.fetch_tracker_data())

        assert exc_info.value.code == "invalid_response"

    def test_unreadable_storage_on_not_modified_is_invalid_response(self) -> None:
        fetcher = TrackerDataFetcher(CannedHTTPClient(response(304, None)), URL, BrokenStorage())

        with pytest.raises(HTTPClientError) as exc_info:
            asyncio.run(fetcher.fetch_tracker_data())

        assert exc_info.value.code == "invalid_response"


class TestErrorPropagationProperty:
    """Transport errors reach the caller verbatim."""

    @given(code=st.sampled_from(["connectivity", "status_code", "invalid_url", "invalid_response"]))
    @settings(max_examples=20)
    def test_http_errors_propagate(self, code: str) -> None:
        error = HTTPClientError(code=code, message="failed")
        storage = InMemoryTrackerDataStorage(b"kept")
        fetcher = TrackerDataFetcher(CannedHTTPClient(error=error), URL, storage)

        with pytest.raises(HTTPClientError) as exc_info:
            asyncio.run(fetcher.fetch_tracker_data())

        assert exc_info.value is error
        assert storage.load() == b"kept"


class TestEndToEndConditionalFetch:
    """Full stack: httpx mock server, ETag decorator, file storage."""

    def test_second_fetch_uses_etag_and_stored_copy(self) -> None:
        body = b'{"entities":{},"trackers":{},"domains":{}}'
        seen_if_none_match: list[Optional[str]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            tag = request.headers.get("if-none-match")
            seen_if_none_match.append(tag)
            if tag == "abc123":
                return httpx.Response(304, headers={"ETag": 'W/"abc123"'})
            return httpx.Response(200, content=body, headers={"ETag": '"abc123"'})

        async def run(directory: Path) -> tuple[FetchedDataset, FetchedDataset]:
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                decorated = ETagDecorator(
                    HttpxClient(client=client),
                    ETagStorage(InMemoryKeyValueStore()),
                )
                fetcher = TrackerDataFetcher(decorated, URL, TrackerDataStorage(directory))
                first = await fetcher.fetch_tracker_data()
                second = await fetcher.fetch_tracker_data()
                return first, second

        with tempfile.TemporaryDirectory() as tmpdir:
            first, second = asyncio.run(run(Path(tmpdir)))

        assert seen_if_none_match == [None, "abc123"]
        assert first == FetchedDataset(data=body, etag="abc123")
        assert second == FetchedDataset(data=body, etag="abc123")
