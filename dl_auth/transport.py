"""
DL Auth SDK HTTP Transport

Default Transport implementation built on httpx.
"""

from typing import Any, Dict, Optional

import httpx

from .errors import InvalidResponseError, NetworkError, RequestTimeoutError
from .types import TransportResponse


class HTTPXTransport:
    """Transport backed by a shared httpx.AsyncClient."""

    def __init__(
        self,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def execute(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[bytes] = None,
    ) -> TransportResponse:
        """
        Send a request and return the raw response.

        Raises:
            RequestTimeoutError: On any httpx timeout.
            InvalidResponseError: If the response body cannot be decoded.
            NetworkError: On any other transport failure.
        """
        try:
            response = await self._get_client().request(
                method=method,
                url=url,
                headers=headers,
                content=body,
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(e) from e
        except httpx.DecodingError as e:
            raise InvalidResponseError(cause=e) from e
        except httpx.RequestError as e:
            raise NetworkError(e) from e

        return TransportResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            content=response.content,
        )

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HTTPXTransport":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
