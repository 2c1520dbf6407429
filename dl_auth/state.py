"""
DL Auth SDK Auth State Channel

One listener at a time. Registering a listener replaces the previous one
and immediately replays the latest state to it: the last emitted event
(INITIAL_SESSION before anything was emitted) with the current session.
"""

import logging
from typing import Callable, Optional

from .types import AuthState, Session

logger = logging.getLogger("dl_auth")

AuthStateListener = Callable[[AuthState, Optional[Session]], None]


class AuthSubscription:
    """Handle returned when a listener is registered."""

    def __init__(
        self,
        channel: "AuthStateChannel",
        token: int,
        on_detach: Optional[Callable[[], None]] = None,
    ) -> None:
        self._channel = channel
        self._token = token
        self._on_detach = on_detach

    @property
    def active(self) -> bool:
        """True while this listener is the channel's current listener."""
        return self._channel._token == self._token and self._channel._listener is not None

    def unsubscribe(self) -> None:
        """Detach the listener. No-op if it was already replaced."""
        self._channel._detach(self._token)

    def _detached(self) -> None:
        if self._on_detach is not None:
            callback, self._on_detach = self._on_detach, None
            callback()


class AuthStateChannel:
    """Single-slot listener registry."""

    def __init__(self) -> None:
        self._listener: Optional[AuthStateListener] = None
        self._subscription: Optional[AuthSubscription] = None
        self._last_event = AuthState.INITIAL_SESSION
        self._token = 0

    def subscribe(
        self,
        listener: AuthStateListener,
        current: Optional[Session],
        on_detach: Optional[Callable[[], None]] = None,
    ) -> AuthSubscription:
        """Replace the current listener and replay the latest state to it."""
        previous = self._subscription
        self._token += 1
        self._listener = listener
        self._subscription = AuthSubscription(self, self._token, on_detach)
        if previous is not None:
            previous._detached()
        self._deliver(listener, self._last_event, current)
        return self._subscription

    def emit(self, event: AuthState, session: Optional[Session]) -> None:
        self._last_event = event
        if self._listener is not None:
            self._deliver(self._listener, event, session)

    def _detach(self, token: int) -> None:
        if token != self._token or self._subscription is None:
            return
        subscription = self._subscription
        self._listener = None
        self._subscription = None
        subscription._detached()

    @staticmethod
    def _deliver(listener: AuthStateListener, event: AuthState, session: Optional[Session]) -> None:
        try:
            listener(event, session)
        except Exception:
            logger.exception("Auth state listener raised while handling %s", event.value)
