"""
DL Auth Python SDK

An async client-side authentication SDK for REST backends: credential
exchange, session persistence, token refresh and auth state notifications.
"""

from .client import AuthClient, create_auth_client
from .types import (
    APIPaths,
    AuthConfig,
    AuthResponse,
    AuthState,
    AuthStateChange,
    OTPType,
    SecretStore,
    Session,
    SignInIdentifierType,
    Transport,
    TransportResponse,
    User,
)
from .errors import (
    AuthError,
    InvalidURLError,
    InvalidResponseError,
    NetworkError,
    RequestTimeoutError,
    EncodingError,
    DecodingError,
    NoSessionError,
    ServerError,
    ServerErrorResponse,
    CustomError,
    is_auth_error,
    is_retryable_error,
)
from .json_value import (
    JSONValue,
    JSONString,
    JSONInt,
    JSONFloat,
    JSONBool,
    JSONArray,
    JSONObject,
    UnsupportedTypeError,
    decode_json_value,
    encode_json_value,
)
from .state import AuthSubscription
from .storage import (
    SESSION_STORAGE_KEY,
    MemorySecretStore,
    FileSecretStore,
    EnvironmentSecretStore,
)
from .transcoding import KeyCase
from .transport import HTTPXTransport

__version__ = "0.1.0"
__all__ = [
    # Client
    "AuthClient",
    "create_auth_client",
    "AuthSubscription",
    # Types
    "APIPaths",
    "AuthConfig",
    "AuthResponse",
    "AuthState",
    "AuthStateChange",
    "OTPType",
    "SecretStore",
    "Session",
    "SignInIdentifierType",
    "Transport",
    "TransportResponse",
    "User",
    "KeyCase",
    # Errors
    "AuthError",
    "InvalidURLError",
    "InvalidResponseError",
    "NetworkError",
    "RequestTimeoutError",
    "EncodingError",
    "DecodingError",
    "NoSessionError",
    "ServerError",
    "ServerErrorResponse",
    "CustomError",
    "is_auth_error",
    "is_retryable_error",
    # Dynamic values
    "JSONValue",
    "JSONString",
    "JSONInt",
    "JSONFloat",
    "JSONBool",
    "JSONArray",
    "JSONObject",
    "UnsupportedTypeError",
    "decode_json_value",
    "encode_json_value",
    # Storage and transport
    "SESSION_STORAGE_KEY",
    "MemorySecretStore",
    "FileSecretStore",
    "EnvironmentSecretStore",
    "HTTPXTransport",
]
