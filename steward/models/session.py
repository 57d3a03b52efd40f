"""
Session model
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from .versioned_model import default_datetime


@dataclass
class Session:
    """An authenticated session owned by the authentication subsystem.

    Not versioned: steward only reads and revokes sessions, it never stores them.
    `current` is relative to the requesting context and is set by the registry.
    """

    session_id: str
    user_id: str
    device: Optional[str] = None
    ip_address: Optional[str] = None
    location: Optional[str] = None
    created_at: datetime = field(default_factory=default_datetime)
    last_active_at: datetime = field(default_factory=default_datetime)
    expires_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    current: bool = False

    def is_active(self, now: datetime) -> bool:
        if self.revoked_at is not None:
            return False
        return self.expires_at is None or now < self.expires_at

    def flagged(self, current_session_id: Optional[str]) -> 'Session':
        return replace(self, current=self.session_id == current_session_id)

    def as_dict(self) -> dict:
        return {
            'session_id': self.session_id,
            'user_id': self.user_id,
            'device': self.device,
            'ip_address': self.ip_address,
            'location': self.location,
            'created_at': self.created_at.isoformat(),
            'last_active_at': self.last_active_at.isoformat(),
            'current': self.current,
        }
