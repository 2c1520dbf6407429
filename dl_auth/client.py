"""
DL Auth SDK Client

The async session manager. It owns the current session and user, runs
every auth operation through the HTTP pipeline, persists sessions to the
secret store and notifies the registered auth state listener.

State changes follow two protocols, both serialized by one asyncio lock:

- commit: persist the new session, swap session and user, emit SIGNED_IN
- clear: delete the persisted session, drop session and user, emit SIGNED_OUT

HTTP calls run outside the lock.
"""

import asyncio
import logging
from dataclasses import replace
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, Mapping, Optional, Type, TypeVar, Union

from .errors import AuthError, CustomError, EncodingError, NoSessionError
from .network import HTTPClient, HTTPMethod, QueryParams
from .state import AuthStateChannel, AuthStateListener, AuthSubscription
from .storage import MemorySecretStore, deserialize_session, serialize_session
from .transport import HTTPXTransport
from .types import (
    APIPaths,
    AuthConfig,
    AuthResponse,
    AuthState,
    AuthStateChange,
    ForgotPasswordRequest,
    OTPType,
    RefreshTokenRequest,
    ResendOTPRequest,
    ResetPasswordRequest,
    Session,
    SignInIdentifierType,
    SignInRequest,
    SignUpRequest,
    UpdatePasswordRequest,
    User,
    VerifyOTPRequest,
)

logger = logging.getLogger("dl_auth")

T = TypeVar("T")
E = TypeVar("E", bound=Enum)


def _enum_member(enum_cls: Type[E], value: Any) -> E:
    try:
        return enum_cls(value)
    except ValueError as e:
        raise EncodingError(e) from e


def _decode_user(data: Any) -> User:
    # Some backends wrap the user: {"user": {...}}
    if isinstance(data, Mapping) and "id" not in data and isinstance(data.get("user"), Mapping):
        return User.from_dict(data["user"])
    return User.from_dict(data)


def _decode_refreshed_session(data: Any) -> Session:
    if isinstance(data, Mapping) and isinstance(data.get("session"), Mapping):
        session = Session.from_dict(data["session"])
        user_data = data.get("user")
        if session.user is None and isinstance(user_data, Mapping):
            session = replace(session, user=User.from_dict(user_data))
        return session
    return Session.from_dict(data)


class AuthClient:
    """
    DL Auth Client - async SDK entry point.

    Construction schedules a background load of the persisted session and
    never blocks. Every operation waits for that load before running.
    """

    def __init__(self, config: AuthConfig) -> None:
        """
        Initialize the auth client.

        Raises:
            InvalidURLError: If ``config.base_url`` is not an http(s) URL.
        """
        self._config = config
        self._paths = config.api_paths
        self._debug = config.debug
        self._storage = config.storage if config.storage is not None else MemorySecretStore()
        self._owns_transport = config.transport is None
        self._transport = (
            config.transport
            if config.transport is not None
            else HTTPXTransport(timeout=config.timeout)
        )
        self._http = HTTPClient(
            config.base_url,
            self._transport,
            token_provider=self._read_access_token,
            wire_case=config.wire_case,
            default_headers=config.headers,
            debug=config.debug,
        )

        # State
        self._session: Optional[Session] = None
        self._user: Optional[User] = None
        self._generation = 0
        self._state_lock = asyncio.Lock()
        self._refresh_lock = asyncio.Lock()
        self._channel = AuthStateChannel()

        # Initial load (started lazily when built outside an event loop)
        self._load_task: Optional["asyncio.Task[None]"] = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            self._load_task = loop.create_task(self._load_session())

        self._log("AuthClient initialized")

    @classmethod
    def from_url(
        cls,
        url: str,
        api_paths: Optional[APIPaths] = None,
        **options: Any,
    ) -> "AuthClient":
        """Create a client from a base URL and optional AuthConfig fields."""
        return cls(AuthConfig(base_url=url, api_paths=api_paths or APIPaths(), **options))

    def _log(self, message: str, *args: Any) -> None:
        """Log debug message."""
        if self._debug:
            logger.debug(f"[DLAuth] {message}", *args)

    # =========================================================================
    # Session State
    # =========================================================================

    @property
    def current_session(self) -> Optional[Session]:
        return self._session

    @property
    def current_user(self) -> Optional[User]:
        return self._user

    def get_access_token(self) -> Optional[str]:
        """Get the access token of the current session."""
        return self._session.access_token if self._session else None

    def is_session_valid(self) -> bool:
        """True if a session is held and its expiry (if any) is in the future."""
        return self._session is not None and self._session.is_valid

    async def initialize(self) -> None:
        """Wait for the persisted session to be loaded."""
        if self._load_task is None:
            self._load_task = asyncio.get_running_loop().create_task(self._load_session())
        await asyncio.shield(self._load_task)

    async def _read_access_token(self) -> Optional[str]:
        async with self._state_lock:
            return self._session.access_token if self._session else None

    def _storage_call(self, action: str, operation: Callable[..., T], *args: Any) -> T:
        try:
            return operation(*args)
        except AuthError:
            raise
        except Exception as e:
            raise CustomError(f"Failed to {action} session: {e}", e) from e

    async def _load_session(self) -> None:
        session: Optional[Session] = None
        async with self._state_lock:
            try:
                data = self._storage_call("load", self._storage.load)
                if data is not None:
                    stored = deserialize_session(data)
                    if stored.is_valid:
                        session = stored
                    else:
                        self._log("Stored session has expired, discarding it")
                        self._storage_call("delete", self._storage.delete)
            except AuthError as e:
                logger.warning("Could not restore stored session: %s", e.message)

            if session is not None:
                self._session = session
                self._user = session.user
                self._generation += 1
            self._channel.emit(AuthState.INITIAL_SESSION, session)

    async def _commit(
        self,
        session: Session,
        user: Optional[User] = None,
        expected_generation: Optional[int] = None,
    ) -> Session:
        """Persist, swap in and announce a new session."""
        data = serialize_session(session)
        async with self._state_lock:
            if expected_generation is not None and expected_generation != self._generation:
                # State moved on while the request was in flight
                if self._session is None:
                    raise NoSessionError("Session ended while it was being refreshed")
                return self._session

            self._storage_call("save", self._storage.save, data)
            self._session = session
            self._user = user if user is not None else session.user
            self._generation += 1
            self._channel.emit(AuthState.SIGNED_IN, session)
            return session

    async def _clear_session(self) -> None:
        async with self._state_lock:
            self._storage_call("delete", self._storage.delete)
            self._session = None
            self._user = None
            self._generation += 1
            self._channel.emit(AuthState.SIGNED_OUT, None)

    async def _commit_response(self, response: AuthResponse) -> AuthResponse:
        if response.session is not None:
            await self._commit(response.session, response.user)
        return response

    def _require_session(self) -> Session:
        if self._session is None:
            raise NoSessionError()
        return self._session

    # =========================================================================
    # Auth State Listeners
    # =========================================================================

    def on_auth_state_change(self, listener: AuthStateListener) -> AuthSubscription:
        """
        Register the auth state listener, replacing any previous one.

        The listener is called right away with the latest state (the last
        emitted event, or INITIAL_SESSION) and the current session, then
        with every later transition.
        """
        return self._channel.subscribe(listener, self._session)

    async def auth_state_changes(self) -> AsyncIterator[AuthStateChange]:
        """
        Iterate over auth state changes.

        Shares the single listener slot: starting an iterator replaces the
        callback listener, and registering a listener ends the iterator.
        """
        queue: "asyncio.Queue[Optional[AuthStateChange]]" = asyncio.Queue()
        subscription = self._channel.subscribe(
            lambda event, session: queue.put_nowait(AuthStateChange(event, session)),
            self._session,
            on_detach=lambda: queue.put_nowait(None),
        )
        try:
            while True:
                change = await queue.get()
                if change is None:
                    return
                yield change
        finally:
            subscription.unsubscribe()

    # =========================================================================
    # Authentication Methods
    # =========================================================================

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuthResponse:
        """
        Register a new user.

        Args:
            email: Email address
            password: Password
            metadata: Free-form user metadata (JSON values only)

        Returns:
            AuthResponse; its session, if any, becomes the current session
        """
        await self.initialize()
        self._log(f"Sign up attempt for: {email}")

        response = await self._http.request(
            self._paths.sign_up,
            "POST",
            body=SignUpRequest(email=email, password=password, metadata=metadata),
            decoder=AuthResponse.from_dict,
        )
        return await self._commit_response(response)

    async def sign_in(
        self,
        identifier: str,
        password: str,
        identifier_type: Union[SignInIdentifierType, str] = SignInIdentifierType.EMAIL,
    ) -> AuthResponse:
        """
        Sign in with an email or a username and a password.

        Exactly one of ``email``/``username`` is sent, per ``identifier_type``.
        """
        await self.initialize()
        identifier_type = _enum_member(SignInIdentifierType, identifier_type)
        self._log(f"Sign in attempt ({identifier_type.value})")

        if identifier_type == SignInIdentifierType.USERNAME:
            request = SignInRequest(password=password, username=identifier)
        else:
            request = SignInRequest(password=password, email=identifier)

        response = await self._http.request(
            self._paths.sign_in,
            "POST",
            body=request,
            decoder=AuthResponse.from_dict,
        )
        return await self._commit_response(response)

    async def sign_in_with_credentials(self, credentials: Any) -> AuthResponse:
        """Sign in with a caller-defined credentials body (mapping or dataclass)."""
        await self.initialize()
        self._log("Sign in attempt (custom credentials)")

        response = await self._http.request(
            self._paths.sign_in,
            "POST",
            body=credentials,
            decoder=AuthResponse.from_dict,
        )
        return await self._commit_response(response)

    async def sign_out(self) -> None:
        """
        Sign out the current user.

        The server is told on a best-effort basis; the local session is
        cleared even when that call fails or the sign-out is cancelled.

        Raises:
            NoSessionError: If no session is held.
        """
        await self.initialize()
        self._require_session()
        self._log("Sign out")

        try:
            await self._http.request_without_response(
                self._paths.sign_out,
                "POST",
                requires_auth=True,
            )
        except AuthError as e:
            logger.warning("Server sign-out failed, clearing local session: %s", e.message)
        finally:
            # a second cancellation must not interrupt the clear
            await asyncio.shield(self._clear_session())

    async def get_current_user(self) -> User:
        """
        Fetch the current user from the API.

        Updates ``current_user`` only; the session and storage are untouched
        and no state change is emitted.
        """
        await self.initialize()
        self._require_session()

        user = await self._http.request(
            self._paths.user,
            "GET",
            requires_auth=True,
            decoder=_decode_user,
        )
        async with self._state_lock:
            if self._session is not None:
                self._user = user
        return user

    async def resend_otp(
        self,
        email: str,
        otp_type: Union[OTPType, str] = OTPType.EMAIL,
    ) -> None:
        """Ask the server to send a new one-time code."""
        await self.initialize()
        await self._http.request_without_response(
            self._paths.resend_otp,
            "POST",
            body=ResendOTPRequest(email=email, type=_enum_member(OTPType, otp_type)),
        )

    async def verify_otp(
        self,
        email: str,
        token: str,
        otp_type: Union[OTPType, str] = OTPType.EMAIL,
    ) -> AuthResponse:
        """Verify a one-time code."""
        await self.initialize()
        response = await self._http.request(
            self._paths.verify_otp,
            "POST",
            body=VerifyOTPRequest(email=email, token=token, type=_enum_member(OTPType, otp_type)),
            decoder=AuthResponse.from_dict,
        )
        return await self._commit_response(response)

    async def forgot_password(self, email: str) -> None:
        """Request a password reset email."""
        await self.initialize()
        await self._http.request_without_response(
            self._paths.forgot_password,
            "POST",
            body=ForgotPasswordRequest(email=email),
        )

    async def reset_password(self, token: str, new_password: str) -> AuthResponse:
        """Set a new password using a reset token."""
        await self.initialize()
        response = await self._http.request(
            self._paths.reset_password,
            "POST",
            body=ResetPasswordRequest(token=token, new_password=new_password),
            decoder=AuthResponse.from_dict,
        )
        return await self._commit_response(response)

    async def update_password(self, new_password: str) -> AuthResponse:
        """
        Change the password of the signed-in user.

        Raises:
            NoSessionError: If no session is held.
        """
        await self.initialize()
        self._require_session()

        response = await self._http.request(
            self._paths.update_password,
            "PUT",
            body=UpdatePasswordRequest(new_password=new_password),
            requires_auth=True,
            decoder=AuthResponse.from_dict,
        )
        return await self._commit_response(response)

    async def refresh_session(self) -> Session:
        """
        Exchange the refresh token for a new session.

        Concurrent calls are serialized: a caller that waited for another
        refresh gets the session that refresh committed.

        Raises:
            NoSessionError: If no session or no refresh token is held, or
                the session was signed out while the refresh was in flight.
        """
        await self.initialize()
        session = self._require_session()
        if not session.refresh_token:
            raise NoSessionError()

        async with self._refresh_lock:
            current = self._require_session()
            if current is not session:
                return current

            generation = self._generation
            self._log("Refreshing session")
            refreshed = await self._http.request(
                self._paths.refresh_session,
                "POST",
                body=RefreshTokenRequest(refresh_token=session.refresh_token),
                decoder=_decode_refreshed_session,
            )
            if refreshed.user is None and self._user is not None:
                refreshed = replace(refreshed, user=self._user)
            return await self._commit(refreshed, expected_generation=generation)

    # =========================================================================
    # Authenticated API Requests
    # =========================================================================

    async def request(
        self,
        method: HTTPMethod,
        path: str,
        *,
        body: Any = None,
        query: Optional[QueryParams] = None,
        headers: Optional[Mapping[str, str]] = None,
        decoder: Optional[Callable[[Any], T]] = None,
    ) -> Any:
        """
        Call any endpoint on the same API with the current bearer token.

        Session state is never touched. The response JSON is returned with
        snake_case keys, or passed through ``decoder`` when given.
        """
        await self.initialize()
        return await self._http.request(
            path,
            method,
            body=body,
            query=query,
            headers=headers,
            requires_auth=True,
            decoder=decoder,
        )

    async def get(
        self,
        path: str,
        *,
        query: Optional[QueryParams] = None,
        headers: Optional[Mapping[str, str]] = None,
        decoder: Optional[Callable[[Any], T]] = None,
    ) -> Any:
        return await self.request("GET", path, query=query, headers=headers, decoder=decoder)

    async def post(
        self,
        path: str,
        *,
        body: Any = None,
        query: Optional[QueryParams] = None,
        headers: Optional[Mapping[str, str]] = None,
        decoder: Optional[Callable[[Any], T]] = None,
    ) -> Any:
        return await self.request(
            "POST", path, body=body, query=query, headers=headers, decoder=decoder
        )

    async def put(
        self,
        path: str,
        *,
        body: Any = None,
        query: Optional[QueryParams] = None,
        headers: Optional[Mapping[str, str]] = None,
        decoder: Optional[Callable[[Any], T]] = None,
    ) -> Any:
        return await self.request(
            "PUT", path, body=body, query=query, headers=headers, decoder=decoder
        )

    async def patch(
        self,
        path: str,
        *,
        body: Any = None,
        query: Optional[QueryParams] = None,
        headers: Optional[Mapping[str, str]] = None,
        decoder: Optional[Callable[[Any], T]] = None,
    ) -> Any:
        return await self.request(
            "PATCH", path, body=body, query=query, headers=headers, decoder=decoder
        )

    async def delete(
        self,
        path: str,
        *,
        body: Any = None,
        query: Optional[QueryParams] = None,
        headers: Optional[Mapping[str, str]] = None,
        decoder: Optional[Callable[[Any], T]] = None,
    ) -> Any:
        return await self.request(
            "DELETE", path, body=body, query=query, headers=headers, decoder=decoder
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def aclose(self) -> None:
        """Close the default transport."""
        if self._load_task is not None and not self._load_task.done():
            await asyncio.shield(self._load_task)
        if self._owns_transport and isinstance(self._transport, HTTPXTransport):
            await self._transport.aclose()

    async def __aenter__(self) -> "AuthClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


def create_auth_client(config: AuthConfig) -> AuthClient:
    """Create a new auth client."""
    return AuthClient(config)
