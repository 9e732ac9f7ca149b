"""
Signed-in session state.

A Session is an immutable snapshot handed explicitly to service calls.
The SessionStore holds the current one for the process and notifies
subscribers on auth changes; subscribers must unsubscribe when done.
"""
import itertools
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional


LOGGER = logging.getLogger(__name__)

# Auth state change events
SIGNED_IN = 'SIGNED_IN'
SIGNED_OUT = 'SIGNED_OUT'
USER_UPDATED = 'USER_UPDATED'
PASSWORD_RECOVERY = 'PASSWORD_RECOVERY'


@dataclass(frozen=True)
class Session:
    """Authenticated user plus the tokens used for remote calls"""
    user_id: str
    email: Optional[str] = None
    role: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    @property
    def is_expired(self) -> bool:
        return bool(self.expires_at and datetime.now() >= self.expires_at)

    @classmethod
    def from_auth_response(cls, data: Dict[str, Any]) -> 'Session':
        """Build a session from a token/verify response body"""
        user = data.get('user') or {}
        metadata = user.get('user_metadata') or {}
        expires_in = data.get('expires_in')
        return cls(
            user_id=user.get('id', ''),
            email=user.get('email'),
            role=metadata.get('role') or user.get('role'),
            access_token=data.get('access_token'),
            refresh_token=data.get('refresh_token'),
            expires_at=datetime.now() + timedelta(seconds=expires_in) if expires_in else None,
        )


class SessionStore:
    """Process-wide holder of the current session with change notifications"""

    def __init__(self, session: Session = None):
        self._session = session
        self._lock = threading.Lock()
        self._subscribers: Dict[int, Callable[[str, Optional[Session]], None]] = {}
        self._ids = itertools.count(1)

    @property
    def current(self) -> Optional[Session]:
        return self._session

    def set(self, session: Session, event: str = SIGNED_IN):
        with self._lock:
            self._session = session
        self._notify(event, session)

    def clear(self, event: str = SIGNED_OUT):
        with self._lock:
            self._session = None
        self._notify(event, None)

    def subscribe(self, callback: Callable[[str, Optional[Session]], None]) -> Callable[[], None]:
        """
        Register for auth state changes.

        Returns:
            A callable that removes the subscription
        """
        with self._lock:
            key = next(self._ids)
            self._subscribers[key] = callback

        def unsubscribe():
            with self._lock:
                self._subscribers.pop(key, None)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _notify(self, event: str, session: Optional[Session]):
        with self._lock:
            callbacks = list(self._subscribers.values())
        LOGGER.debug("auth state changed: %s (%s)", event, 'session' if session else 'no session')
        for callback in callbacks:
            try:
                callback(event, session)
            except Exception:
                LOGGER.exception("auth state subscriber failed for event=%s", event)
