"""
Session store contract.

Sessions belong to the authentication subsystem; steward only lists and revokes them.
Implementations raise SessionStoreError for transport failures, which callers treat
as retryable.
"""
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Optional

from steward.models import Session
from steward.models.versioned_model import default_datetime


class SessionStore(ABC):
    """Abstract access to the authentication system's sessions."""

    @abstractmethod
    def list(self, user_id: str) -> List[Session]:
        """All sessions the store still knows for `user_id`, including revoked ones."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[Session]:
        """The session with this id, or None if the store never issued it."""

    @abstractmethod
    def revoke(self, session_id: str) -> bool:
        """Revoke a session. Returns False if it was already revoked or unknown."""

    def revoke_all_except(self, user_id: str, session_id: str) -> int:
        """Revoke every session of `user_id` other than `session_id`. Returns the number revoked."""
        return sum(
            1 for session in self.list(user_id)
            if session.session_id != session_id and self.revoke(session.session_id)
        )


class InMemorySessionStore(SessionStore):
    """A SessionStore for tests and single-process deployments."""

    def __init__(self, clock: Callable[[], datetime] = default_datetime):
        self.clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def add(self, session: Session) -> Session:
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def list(self, user_id: str) -> List[Session]:
        with self._lock:
            return [s for s in self._sessions.values() if s.user_id == user_id]

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def revoke(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.revoked_at is not None:
                return False
            self._sessions[session_id] = replace(session, revoked_at=self.clock())
            return True
