"""Reactive holder for the current session of one browser connection."""

import logging
import threading
from enum import Enum
from typing import Callable, List, Optional, Union

from use_cases.session_models import Session

log = logging.getLogger(__name__)


class SessionEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    MFA_CHALLENGE_VERIFIED = "MFA_CHALLENGE_VERIFIED"


class _Unknown:
    """Marker for "first session check has not resolved yet"."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __bool__(self) -> bool:
        return False


UNKNOWN = _Unknown()

SessionListener = Callable[[SessionEvent, Optional[Session]], None]
CurrentSession = Union[Session, None, _Unknown]


class SessionStore:
    """
    Holds the current session and fans out change notifications.

    The store never talks to the network. Its only writer is the
    AuthSessionManager, which feeds it both provider pushes and the
    results of explicit calls.
    """

    def __init__(self):
        self._current: CurrentSession = UNKNOWN
        self._listeners: List[SessionListener] = []
        self._version = 0
        self._lock = threading.RLock()

    def get_current(self) -> CurrentSession:
        return self._current

    @property
    def is_known(self) -> bool:
        return self._current is not UNKNOWN

    @property
    def version(self) -> int:
        return self._version

    def on_change(self, listener: SessionListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def apply(self, event: SessionEvent, session: Optional[Session]) -> int:
        # Notification happens under the lock so listeners see events in apply order.
        with self._lock:
            if event == SessionEvent.SIGNED_OUT:
                session = None
            self._current = session
            self._version += 1
            version = self._version
            log.debug("Session event %s applied (version %s)", event.value, version)
            for listener in list(self._listeners):
                try:
                    listener(event, session)
                except Exception:
                    log.exception("Session listener failed on %s", event.value)
            return version
