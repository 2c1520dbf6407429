"""
DL Auth SDK HTTP Pipeline

Builds requests (URL, headers, transcoded body), runs them through the
transport and classifies responses. Non-2xx responses always become
ServerError before any attempt to decode a success body. Nothing here
retries.
"""

import logging
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Literal,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

import httpx

from .errors import (
    AuthError,
    DecodingError,
    InvalidResponseError,
    InvalidURLError,
    NetworkError,
    ServerError,
    ServerErrorResponse,
)
from .json_value import UnsupportedTypeError
from .transcoding import KeyCase, decode_body, encode_body
from .types import Transport, TransportResponse

logger = logging.getLogger("dl_auth")

T = TypeVar("T")

HTTPMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]
QueryParams = Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]
TokenProvider = Callable[[], Awaitable[Optional[str]]]


def validate_base_url(base_url: str) -> str:
    """
    Normalize a base URL, stripping any trailing slash.

    Raises:
        InvalidURLError: If the URL has no http(s) scheme or no host.
    """
    try:
        url = httpx.URL(base_url)
    except (httpx.InvalidURL, TypeError) as e:
        raise InvalidURLError(f"Invalid base URL: {base_url!r}") from e
    if url.scheme not in ("http", "https") or not url.host:
        raise InvalidURLError(f"Invalid base URL: {base_url!r}")
    return base_url.rstrip("/")


class HTTPClient:
    """Request pipeline shared by auth operations and generic API calls."""

    def __init__(
        self,
        base_url: str,
        transport: Transport,
        token_provider: Optional[TokenProvider] = None,
        wire_case: KeyCase = KeyCase.SNAKE,
        default_headers: Optional[Dict[str, str]] = None,
        debug: bool = False,
    ) -> None:
        self._base_url = validate_base_url(base_url)
        self._transport = transport
        self._token_provider = token_provider
        self._wire_case = wire_case
        self._default_headers = dict(default_headers or {})
        self._debug = debug

    @property
    def base_url(self) -> str:
        return self._base_url

    def _log(self, message: str, *args: Any) -> None:
        """Log debug message."""
        if self._debug:
            logger.debug(f"[DLAuth] {message}", *args)

    def build_url(self, path: str, query: Optional[QueryParams] = None) -> str:
        """
        Join base URL, path and query parameters.

        Raises:
            InvalidURLError: If the result is not a usable http(s) URL.
        """
        url = f"{self._base_url}/{path.lstrip('/')}" if path else self._base_url
        try:
            parsed = httpx.URL(url, params=query) if query else httpx.URL(url)
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            raise InvalidURLError() from e
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise InvalidURLError()
        return str(parsed)

    async def _build_headers(
        self,
        headers: Optional[Mapping[str, str]],
        requires_auth: bool,
    ) -> Dict[str, str]:
        request_headers: Dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            **self._default_headers,
        }

        if requires_auth and self._token_provider is not None:
            access_token = await self._token_provider()
            # Without a token the request goes out unauthenticated and the
            # server's 401 surfaces as ServerError.
            if access_token:
                request_headers["Authorization"] = f"Bearer {access_token}"

        if headers:
            request_headers.update(headers)
        return request_headers

    async def _perform(
        self,
        path: str,
        method: HTTPMethod,
        body: Any,
        query: Optional[QueryParams],
        headers: Optional[Mapping[str, str]],
        requires_auth: bool,
    ) -> TransportResponse:
        url = self.build_url(path, query)
        request_headers = await self._build_headers(headers, requires_auth)
        content = encode_body(body, self._wire_case) if body is not None else None

        self._log(f"{method} {path}")
        try:
            response = await self._transport.execute(method, url, request_headers, content)
        except AuthError:
            raise
        except Exception as e:
            raise NetworkError(e) from e

        status_code = getattr(response, "status_code", None)
        payload = getattr(response, "content", None)
        if (
            not isinstance(status_code, int)
            or isinstance(status_code, bool)
            or not 100 <= status_code <= 599
            or not isinstance(payload, (bytes, bytearray))
        ):
            raise InvalidResponseError()

        self._log(f"{method} {path} -> {status_code}")
        if not 200 <= status_code <= 299:
            raise ServerError(ServerErrorResponse(status_code, bytes(payload)))
        return response

    async def request(
        self,
        path: str,
        method: HTTPMethod = "GET",
        *,
        body: Any = None,
        query: Optional[QueryParams] = None,
        headers: Optional[Mapping[str, str]] = None,
        requires_auth: bool = False,
        decoder: Optional[Callable[[Any], T]] = None,
    ) -> Any:
        """
        Execute a request and decode the success body.

        Args:
            path: Path relative to the base URL.
            method: HTTP method.
            body: Request body (mapping, dataclass, JSONValue, list).
            query: Query parameters.
            headers: Extra headers; they override the defaults.
            requires_auth: Attach the bearer token if one is held.
            decoder: Builds the result from the snake_case JSON, e.g.
                ``Session.from_dict``. Without one the JSON is returned.
                An empty body (e.g. 204 No Content) is passed on as None.

        Raises:
            InvalidURLError, EncodingError, NetworkError, RequestTimeoutError,
            InvalidResponseError, ServerError, DecodingError
        """
        response = await self._perform(path, method, body, query, headers, requires_auth)
        data = decode_body(response.content) if response.content.strip() else None
        if decoder is None:
            return data
        try:
            return decoder(data)
        except (KeyError, TypeError, ValueError, UnsupportedTypeError) as e:
            raise DecodingError(e) from e

    async def request_without_response(
        self,
        path: str,
        method: HTTPMethod = "POST",
        *,
        body: Any = None,
        query: Optional[QueryParams] = None,
        headers: Optional[Mapping[str, str]] = None,
        requires_auth: bool = False,
    ) -> None:
        """Execute a request, validating only the status class."""
        await self._perform(path, method, body, query, headers, requires_auth)

