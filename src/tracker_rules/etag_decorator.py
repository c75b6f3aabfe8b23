"""
Conditional-request decoration for any HTTPClient.

ETagDecorator implements HTTPClient by wrapping another HTTPClient: it
attaches If-None-Match from the stored ETag for the exact request URL,
forces the request past any local transport cache, and records the ETag of
every successful response (200 or 304) for the next round-trip.
"""

from typing import Optional

from .audit_logger import AuditLogger
from .etag_storage import ETagStorageProtocol
from .http_client import HTTPClient
from .models import HTTPRequest, HTTPResponse


IF_NONE_MATCH_HEADER = "If-None-Match"
ETAG_HEADER = "ETag"


def clean_etag(etag: str) -> str:
    """Strip the weak-validator prefix and surrounding quotes from an ETag."""
    value = etag.strip()
    if value[:2].upper() == "W/":
        value = value[2:]
    return value.replace('"', "")


class ETagDecorator:
    """HTTPClient that adds ETag-based conditional requests to a decoratee."""

    def __init__(
        self,
        decoratee: HTTPClient,
        etag_storage: ETagStorageProtocol,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._decoratee = decoratee
        self._etag_storage = etag_storage
        self._logger = logger

    async def get(self, request: HTTPRequest) -> HTTPResponse:
        key = request.url
        etag_request = HTTPRequest(
            url=request.url,
            headers=dict(request.headers),
            bypass_local_cache=True,
        )

        stored_etag = self._etag_storage.retrieve_etag(key)
        if stored_etag:
            etag_request = etag_request.with_header(IF_NONE_MATCH_HEADER, stored_etag)

        # Errors from the decoratee propagate unchanged
        response = await self._decoratee.get(etag_request)

        etag = response.header(ETAG_HEADER)
        if etag:
            cleaned = clean_etag(etag)
            self._etag_storage.store_etag(cleaned, key)
            if self._logger:
                self._logger.debug(
                    "ETagDecorator",
                    "Stored ETag",
                    {"url": key, "etag": cleaned, "status_code": response.status_code},
                )

        return response
