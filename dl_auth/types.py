"""
DL Auth SDK Type Definitions

Models exchanged with the auth backend, the configuration object and the
collaborator interfaces (secret store, transport).
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

from .json_value import JSONValue, UnsupportedTypeError
from .transcoding import KeyCase, format_datetime, parse_datetime

# Errors a lenient decode treats as "field absent"
_DECODE_ERRORS = (KeyError, TypeError, ValueError, UnsupportedTypeError)


@runtime_checkable
class SecretStore(Protocol):
    """Persists a single serialized session blob under a fixed key."""

    def save(self, data: bytes) -> None:
        """Store the blob, replacing any previous one."""
        ...

    def load(self) -> Optional[bytes]:
        """Return the stored blob, or None if nothing is stored."""
        ...

    def delete(self) -> None:
        """Remove the stored blob. Deleting a missing blob is not an error."""
        ...


@dataclass
class TransportResponse:
    """Raw HTTP response returned by a Transport."""

    status_code: int
    headers: Dict[str, str]
    content: bytes


@runtime_checkable
class Transport(Protocol):
    """Executes fully formed HTTP requests."""

    async def execute(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[bytes] = None,
    ) -> TransportResponse:
        ...


@dataclass
class APIPaths:
    """Endpoint paths, relative to the base URL."""

    sign_up: str = "/auth/signup"
    sign_in: str = "/auth/signin"
    sign_out: str = "/auth/signout"
    user: str = "/auth/user"
    resend_otp: str = "/auth/otp/resend"
    verify_otp: str = "/auth/otp/verify"
    forgot_password: str = "/auth/password/forgot"
    reset_password: str = "/auth/password/reset"
    update_password: str = "/auth/password/update"
    refresh_session: str = "/auth/token/refresh"


@dataclass
class AuthConfig:
    """SDK configuration options."""

    # API base URL, e.g. https://api.example.com
    base_url: str
    # Endpoint paths (defaults match the reference backend)
    api_paths: APIPaths = field(default_factory=APIPaths)
    # Request timeout in seconds for the default transport
    timeout: float = 30.0
    # Extra headers sent with every request
    headers: Optional[Dict[str, str]] = None
    # Session persistence (default: MemorySecretStore)
    storage: Optional[SecretStore] = None
    # HTTP transport (default: HTTPXTransport)
    transport: Optional[Transport] = None
    # Field naming convention used on the wire
    wire_case: KeyCase = KeyCase.SNAKE
    # Enable debug logging
    debug: bool = False


class OTPType(str, Enum):
    SIGNUP = "signup"
    EMAIL = "email"
    SMS = "sms"
    PHONE_CHANGE = "phone_change"
    EMAIL_CHANGE = "email_change"
    RECOVERY = "recovery"


class SignInIdentifierType(str, Enum):
    EMAIL = "email"
    USERNAME = "username"


class AuthState(str, Enum):
    """Session transition labels delivered to listeners."""
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    UNKNOWN = "UNKNOWN"


def _optional_str(data: Mapping[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError(f"'{key}' must be a string")
    return value


def _optional_datetime(data: Mapping[str, Any], key: str) -> Optional[datetime]:
    value = data.get(key)
    return parse_datetime(value) if value is not None else None


def _lenient(decode: Any, *args: Any) -> Any:
    try:
        return decode(*args)
    except _DECODE_ERRORS:
        return None


@dataclass(frozen=True)
class User:
    """User identity returned from the API."""

    id: str
    email: Optional[str] = None
    phone: Optional[str] = None
    email_confirmed_at: Optional[datetime] = None
    phone_confirmed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    metadata: Optional[Dict[str, JSONValue]] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "User":
        """
        Create from a snake_case dictionary.

        Raises:
            KeyError: If ``id`` is missing.
            TypeError, ValueError: If a present field has the wrong type or
                a timestamp is not ISO-8601.
            UnsupportedTypeError: If metadata holds a non-JSON value.
        """
        if not isinstance(data, Mapping):
            raise TypeError("Expected an object for user")
        user_id = data["id"]
        if not isinstance(user_id, str):
            raise TypeError("'id' must be a string")

        raw_metadata = data.get("metadata")
        metadata: Optional[Dict[str, JSONValue]] = None
        if raw_metadata is not None:
            if not isinstance(raw_metadata, Mapping):
                raise TypeError("'metadata' must be an object")
            metadata = {
                key: JSONValue.from_python(value) for key, value in raw_metadata.items()
            }

        return cls(
            id=user_id,
            email=_optional_str(data, "email"),
            phone=_optional_str(data, "phone"),
            email_confirmed_at=_optional_datetime(data, "email_confirmed_at"),
            phone_confirmed_at=_optional_datetime(data, "phone_confirmed_at"),
            created_at=_optional_datetime(data, "created_at"),
            updated_at=_optional_datetime(data, "updated_at"),
            metadata=metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"id": self.id}
        for name in ("email", "phone"):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        for name in ("email_confirmed_at", "phone_confirmed_at", "created_at", "updated_at"):
            value = getattr(self, name)
            if value is not None:
                result[name] = format_datetime(value)
        if self.metadata is not None:
            result["metadata"] = {key: value.to_python() for key, value in self.metadata.items()}
        return result


def _expires_at(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    # epoch seconds are common enough to accept alongside ISO-8601
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError) as e:
            raise ValueError(f"Invalid expiry timestamp: {value}") from e
    return parse_datetime(value)


@dataclass(frozen=True)
class Session:
    """Credential bundle for an authenticated period."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    expires_at: Optional[datetime] = None
    token_type: Optional[str] = None
    user: Optional[User] = None

    @property
    def is_valid(self) -> bool:
        """True if there is no expiry timestamp or it is still in the future."""
        if self.expires_at is None:
            return True
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at > datetime.now(timezone.utc)

    @property
    def bearer_type(self) -> str:
        return self.token_type or "Bearer"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Session":
        """
        Create from a snake_case dictionary.

        The access token is read from ``token`` first, then ``access_token``.
        Optional fields that are malformed are treated as absent.

        Raises:
            KeyError: If neither token field holds a string.
        """
        if not isinstance(data, Mapping):
            raise TypeError("Expected an object for session")
        access_token = _token_field(data)
        if access_token is None:
            raise KeyError("No access token found. Expected 'token' or 'access_token' field")

        refresh_token = data.get("refresh_token")
        expires_in = data.get("expires_in")
        token_type = data.get("token_type")
        user_data = data.get("user")
        return cls(
            access_token=access_token,
            refresh_token=refresh_token if isinstance(refresh_token, str) else None,
            expires_in=(
                expires_in
                if isinstance(expires_in, int) and not isinstance(expires_in, bool)
                else None
            ),
            expires_at=_lenient(_expires_at, data.get("expires_at")),
            token_type=token_type if isinstance(token_type, str) else None,
            user=_lenient(User.from_dict, user_data) if user_data is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"access_token": self.access_token}
        if self.refresh_token is not None:
            result["refresh_token"] = self.refresh_token
        if self.expires_in is not None:
            result["expires_in"] = self.expires_in
        if self.expires_at is not None:
            result["expires_at"] = format_datetime(self.expires_at)
        if self.token_type is not None:
            result["token_type"] = self.token_type
        if self.user is not None:
            result["user"] = self.user.to_dict()
        return result


def _token_field(data: Mapping[str, Any]) -> Optional[str]:
    for key in ("token", "access_token"):
        value = data.get(key)
        if isinstance(value, str):
            return value
    return None


@dataclass(frozen=True)
class AuthResponse:
    """Envelope returned by sign-up, sign-in, OTP and password operations."""

    user: Optional[User] = None
    session: Optional[Session] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuthResponse":
        """
        Create from a snake_case dictionary.

        Accepts a nested ``session`` object or token fields at the root. A
        decodable nested session wins over root tokens. The root user is
        attached to a session that does not embed one.
        """
        if not isinstance(data, Mapping):
            raise TypeError("Expected an object for auth response")
        user_data = data.get("user")
        user = _lenient(User.from_dict, user_data) if user_data is not None else None

        session: Optional[Session] = None
        nested = data.get("session")
        if isinstance(nested, Mapping):
            session = _lenient(Session.from_dict, nested)

        if session is None:
            access_token = _token_field(data)
            if access_token is not None:
                refresh_token = data.get("refresh_token")
                session = Session(
                    access_token=access_token,
                    refresh_token=refresh_token if isinstance(refresh_token, str) else None,
                    user=user,
                )
        elif session.user is None and user is not None:
            session = replace(session, user=user)

        return cls(user=user, session=session)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.user is not None:
            result["user"] = self.user.to_dict()
        if self.session is not None:
            result["session"] = self.session.to_dict()
        return result


@dataclass(frozen=True)
class AuthStateChange:
    """A transition label paired with the session current at that moment."""

    event: AuthState
    session: Optional[Session] = None


# Request bodies. Optional fields left as None are not sent.

@dataclass
class SignUpRequest:
    email: str
    password: str
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class SignInRequest:
    password: str
    email: Optional[str] = None
    username: Optional[str] = None


@dataclass
class ResendOTPRequest:
    email: str
    type: OTPType


@dataclass
class VerifyOTPRequest:
    email: str
    token: str
    type: OTPType


@dataclass
class ForgotPasswordRequest:
    email: str


@dataclass
class ResetPasswordRequest:
    token: str
    new_password: str


@dataclass
class UpdatePasswordRequest:
    new_password: str


@dataclass
class RefreshTokenRequest:
    refresh_token: str
