"""
HTTP fetch layer for the tracker rules pipeline.

This module defines the minimal HTTPClient capability and an httpx-based
transport implementing it. Status interpretation:

- transport failures (connect errors, timeouts) -> connectivity
- protocol or decoding failures -> invalid_response
- 304 Not Modified -> success with data=None and headers intact
- 2xx -> success with the body bytes
- anything else -> status_code error carrying the status
"""

from abc import abstractmethod
from typing import Optional, Protocol, runtime_checkable

import httpx

from .audit_logger import AuditLogger
from .enums import HTTPClientErrorCode
from .exceptions import HTTPClientError
from .models import HTTPRequest, HTTPResponse


NOT_MODIFIED = 304

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


@runtime_checkable
class HTTPClient(Protocol):
    """Protocol defining the transport capability used by the fetch layer."""

    @abstractmethod
    async def get(self, request: HTTPRequest) -> HTTPResponse:
        """
        Issue a GET request.

        Args:
            request: The request to send

        Returns:
            HTTPResponse; data is None for 304 Not Modified

        Raises:
            HTTPClientError: connectivity, invalid_response, invalid_url or status_code
        """
        ...


def is_success_status(status_code: int) -> bool:
    return 200 <= status_code <= 299


class HttpxClient:
    """
    Async HTTP client backed by httpx.

    Usable as an async context manager; a client created lazily on first use
    is closed by close() or on context exit. An injected client is never
    closed by this class.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the HTTP client.

        Args:
            timeout: Request timeout in seconds
            client: Optional pre-built httpx client (e.g. with a mock transport)
            logger: Optional audit logger
        """
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._logger = logger

    async def __aenter__(self) -> "HttpxClient":
        """Async context manager entry."""
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=True,
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def get(self, request: HTTPRequest) -> HTTPResponse:
        client = self._ensure_client()

        headers = dict(request.headers)
        if request.bypass_local_cache:
            headers.update(NO_CACHE_HEADERS)

        try:
            response = await client.get(request.url, headers=headers)
            body = response.content
        except httpx.InvalidURL as e:
            raise HTTPClientError(
                code=HTTPClientErrorCode.INVALID_URL.value,
                message=f"Invalid request URL: {e}",
                details={"url": request.url},
            )
        except httpx.UnsupportedProtocol as e:
            raise HTTPClientError(
                code=HTTPClientErrorCode.INVALID_URL.value,
                message=f"Unsupported URL scheme: {e}",
                details={"url": request.url},
            )
        except (httpx.ProtocolError, httpx.DecodingError) as e:
            raise HTTPClientError(
                code=HTTPClientErrorCode.INVALID_RESPONSE.value,
                message=f"Malformed HTTP response: {e}",
                details={"url": request.url},
            )
        except httpx.TransportError as e:
            # Connect errors, timeouts, network errors
            raise HTTPClientError(
                code=HTTPClientErrorCode.CONNECTIVITY.value,
                message=f"Connection error: {e}",
                details={"url": request.url},
            )

        status = response.status_code
        response_headers = dict(response.headers)

        if self._logger:
            self._logger.debug(
                "HttpxClient",
                "Received response",
                {"url": request.url, "status_code": status, "bytes": len(body)},
            )

        if status == NOT_MODIFIED:
            return HTTPResponse(
                url=request.url,
                status_code=status,
                headers=response_headers,
                data=None,
            )

        if not is_success_status(status):
            raise HTTPClientError(
                code=HTTPClientErrorCode.STATUS_CODE.value,
                message=f"Unexpected HTTP status: {status}",
                details={"url": request.url, "status_code": status},
            )

        return HTTPResponse(
            url=request.url,
            status_code=status,
            headers=response_headers,
            data=body,
        )

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
