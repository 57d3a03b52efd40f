"""
Session registry backing the "sign out everywhere" security controls.

Revocation is idempotent: a session that is already revoked or has expired is a
successful no-op, so a race with natural expiry never surfaces as an error. Only
authorization failures and session-store transport failures raise.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from steward.audit import AuditLog
from steward.exceptions import NotPermittedError, SessionNotFoundError, SessionStoreError
from steward.models import AuditAction, Session
from steward.models.versioned_model import default_datetime
from steward.policy import Action, require
from steward.repositories import MembershipRepository
from .store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class BulkRevocationResult:
    """Outcome of revoking several sessions; each revocation succeeded or failed on its own."""
    revoked: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.revoked)


class SessionRegistry:
    def __init__(
        self,
        store: SessionStore,
        memberships: MembershipRepository,
        audit_log: AuditLog,
        clock: Callable[[], datetime] = default_datetime,
    ):
        self.store = store
        self.memberships = memberships
        self.audit_log = audit_log
        self.clock = clock

    def _active_sessions(self, user_id: str, current_session_id: Optional[str], now: datetime) -> List[Session]:
        return [s.flagged(current_session_id) for s in self.store.list(user_id) if s.is_active(now)]

    def list_sessions(self, user_id: str, current_session_id: Optional[str] = None) -> List[Session]:
        """Active sessions of `user_id`, most recently active first, with the current one flagged."""
        sessions = self._active_sessions(user_id, current_session_id, self.clock())
        return sorted(sessions, key=lambda s: s.last_active_at, reverse=True)

    def list_organization_sessions(
        self,
        organization_id: str,
        actor_id: str,
        current_session_id: Optional[str] = None,
    ) -> List[Session]:
        """
        Active sessions of every member of the organization, most recently active first.

        Raises:
            NotPermittedError: the actor may not access the organization's security settings.
            SessionStoreError: a member's sessions could not be listed.
        """
        require(self.memberships.get_role(organization_id, actor_id), Action.access_security_settings)
        now = self.clock()
        sessions = []
        for membership in self.memberships.list_members(organization_id):
            sessions.extend(self._active_sessions(membership.user_id, current_session_id, now))
        return sorted(sessions, key=lambda s: s.last_active_at, reverse=True)

    def _authorize(self, session_user_id: str, actor_id: str, organization_id: Optional[str]):
        if session_user_id == actor_id:
            # any authenticated user may end their own sessions
            return
        if organization_id is None:
            logger.info("Denied revoking sessions of %s by %s outside an organization", session_user_id, actor_id)
            raise NotPermittedError()
        require(
            self.memberships.get_role(organization_id, actor_id),
            Action.terminate_other_session,
            is_acting_on_self=False,
        )
        if self.memberships.get_role(organization_id, session_user_id) is None:
            logger.info("Denied revoking sessions of non-member %s in organization %s", session_user_id, organization_id)
            raise NotPermittedError()

    def _record(self, session: Session, revoked_by: str, reason: str, organization_id: Optional[str]):
        now = self.clock()
        self.audit_log.record(
            AuditAction.session_terminated,
            organization_id,
            revoked_by,
            subject_user_id=session.user_id,
            metadata={
                'user_id': session.user_id,
                'session_id': session.session_id,
                'revoked_by': revoked_by,
                'reason': reason,
                'timestamp': now.isoformat(),
            },
        )

    def revoke(
        self,
        session_id: str,
        actor_id: str,
        organization_id: Optional[str] = None,
        reason: str = 'user_requested',
    ) -> bool:
        """
        Revoke one session.

        Returns True if the session was revoked by this call and False if it was
        already revoked or expired.

        Raises:
            SessionNotFoundError: the store never issued this session.
            NotPermittedError: the session belongs to someone else and either the actor may not
                access security settings of `organization_id` or its owner is not a member of it.
            SessionStoreError: transport failure; retryable.
        """
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError()
        self._authorize(session.user_id, actor_id, organization_id)

        if not session.is_active(self.clock()) or not self.store.revoke(session_id):
            logger.debug("Session %s already ended; nothing to revoke", session_id)
            return False
        self._record(session, actor_id, reason, organization_id)
        return True

    def revoke_all_other_sessions(
        self,
        user_id: str,
        current_session_id: str,
        actor_id: Optional[str] = None,
        organization_id: Optional[str] = None,
        reason: str = 'sign_out_everywhere',
    ) -> BulkRevocationResult:
        """
        Revoke every active session of `user_id` except `current_session_id`.

        Each revocation is independent: a session that disappears meanwhile is skipped and a
        per-session store failure is collected in `failures` without stopping the rest.

        Raises:
            NotPermittedError: acting on another user who is not a member of `organization_id`
                or without security-settings access to it.
            SessionStoreError: the sessions could not be listed at all.
        """
        actor_id = actor_id or user_id
        self._authorize(user_id, actor_id, organization_id)

        result = BulkRevocationResult()
        for session in self.list_sessions(user_id, current_session_id):
            if session.current:
                continue
            try:
                revoked = self.store.revoke(session.session_id)
            except SessionStoreError as e:
                logger.warning("Failed to revoke session %s: %s", session.session_id, e)
                result.failures[session.session_id] = e.message
                continue
            if not revoked:
                result.skipped.append(session.session_id)
                continue
            self._record(session, actor_id, reason, organization_id)
            result.revoked.append(session.session_id)

        logger.info(
            "Revoked %s sessions for user %s (%s skipped, %s failed)",
            result.count, user_id, len(result.skipped), len(result.failures)
        )
        return result
