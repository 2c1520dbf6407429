"""
DL Auth SDK Error Classes

A closed set of error kinds. Every failure that leaves the HTTP pipeline
or the session manager is one of the AuthError subclasses below.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .json_value import JSONObject, JSONString, JSONValue, UnsupportedTypeError, decode_json_value


class ServerErrorResponse:
    """
    A non-2xx HTTP response, kept both raw and best-effort structured.

    The raw body is always retained. When it decodes as a JSON object, the
    common ``error``, ``message`` and ``code`` string fields are extracted
    and every other field is available through lookup. Construction never
    fails.
    """

    def __init__(self, status_code: int, data: Optional[bytes] = None) -> None:
        self.status_code = status_code
        self.data = data if data is not None else b""
        self._fields: Optional[Dict[str, JSONValue]] = None
        self.error: Optional[str] = None
        self.message: Optional[str] = None
        self.code: Optional[str] = None

        if not self.data:
            return
        try:
            decoded = decode_json_value(self.data)
        except UnsupportedTypeError:
            return
        if not isinstance(decoded, JSONObject):
            return

        self._fields = dict(decoded.value)
        self.error = self._string_field("error")
        self.message = self._string_field("message")
        self.code = self._string_field("code")

    def _string_field(self, key: str) -> Optional[str]:
        value = self._fields.get(key) if self._fields else None
        return value.value if isinstance(value, JSONString) else None

    @property
    def fields(self) -> Optional[Dict[str, JSONValue]]:
        """Decoded body fields, or None if the body is not a JSON object."""
        return dict(self._fields) if self._fields is not None else None

    @property
    def all_fields(self) -> Optional[Dict[str, Any]]:
        """Decoded body fields as plain Python values."""
        if self._fields is None:
            return None
        return {key: value.to_python() for key, value in self._fields.items()}

    def get(self, key: str) -> Optional[JSONValue]:
        return self._fields.get(key) if self._fields else None

    def __getitem__(self, key: str) -> Any:
        value = self.get(key)
        return value.to_python() if value is not None else None

    @property
    def description(self) -> str:
        return self.message or self.error or f"Server error ({self.status_code})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status_code": self.status_code,
            "error": self.error,
            "message": self.message,
            "code": self.code,
            "fields": self.all_fields,
        }

    def __repr__(self) -> str:
        return f"ServerErrorResponse(status_code={self.status_code!r}, error={self.error!r})"


class AuthError(Exception):
    """Base error class for DL Auth SDK."""

    code = "AUTH_ERROR"

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    @property
    def server_error(self) -> Optional[ServerErrorResponse]:
        """The wrapped server response, for ServerError only."""
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "name": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "timestamp": self.timestamp,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class InvalidURLError(AuthError):
    """The request URL could not be composed."""

    code = "INVALID_URL"

    def __init__(self, message: str = "Invalid URL configuration") -> None:
        super().__init__(message)


class InvalidResponseError(AuthError):
    """The transport returned something that is not an HTTP response."""

    code = "INVALID_RESPONSE"

    def __init__(
        self,
        message: str = "Invalid response from server",
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, cause)


class NetworkError(AuthError):
    """Network error (connection refused, DNS failure, reset)."""

    code = "NETWORK_ERROR"

    def __init__(self, cause: Any) -> None:
        super().__init__(
            f"Network error: {cause}",
            cause if isinstance(cause, BaseException) else None,
        )


class RequestTimeoutError(AuthError):
    """The request timed out."""

    code = "TIMEOUT"

    def __init__(self, cause: Optional[BaseException] = None) -> None:
        super().__init__("Request timed out", cause)


class EncodingError(AuthError):
    """The request body could not be serialized."""

    code = "ENCODING_ERROR"

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Failed to encode request: {cause}", cause)


class DecodingError(AuthError):
    """The response body did not match the expected shape."""

    code = "DECODING_ERROR"

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Failed to decode response: {cause}", cause)


class NoSessionError(AuthError):
    """The operation needs a session and none is held."""

    code = "NO_SESSION"

    def __init__(self, message: str = "No active session found") -> None:
        super().__init__(message)


class ServerError(AuthError):
    """The server answered with a non-2xx status."""

    code = "SERVER_ERROR"

    def __init__(self, response: ServerErrorResponse) -> None:
        super().__init__(response.description)
        self._response = response

    @property
    def server_error(self) -> ServerErrorResponse:
        return self._response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["server_error"] = self._response.to_dict()
        return result


class CustomError(AuthError):
    """Free-form error, used by secret stores."""

    code = "CUSTOM_ERROR"


def is_auth_error(error: Any) -> bool:
    """Check if error is an AuthError."""
    return isinstance(error, AuthError)


def is_retryable_error(error: Any) -> bool:
    """Check if error is worth retrying. Retrying is up to the caller."""
    if isinstance(error, (NetworkError, RequestTimeoutError)):
        return True
    if isinstance(error, ServerError):
        return 500 <= error.status_code < 600
    return False
