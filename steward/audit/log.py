"""
Append-only activity log.

Written by every lifecycle transition and session revocation; read by the activity
timeline. Entries are only ever appended.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from steward.data.base import SaveOperation
from steward.models import AuditAction, AuditEvent, AuditSeverity
from steward.models.versioned_model import default_datetime
from steward.repositories import AuditEventRepository

logger = logging.getLogger(__name__)

_SEVERITY = {
    AuditAction.organization_soft_deleted: AuditSeverity.warning,
    AuditAction.organization_permanently_deleted: AuditSeverity.critical,
    AuditAction.ownership_transfer_accepted: AuditSeverity.warning,
    AuditAction.session_terminated: AuditSeverity.warning,
}


class AuditLog:
    """Records AuditEvents through an AuditEventRepository."""

    def __init__(self, repository: AuditEventRepository, clock: Callable[[], datetime] = default_datetime):
        self.repository = repository
        self.clock = clock

    def build(
        self,
        action: AuditAction,
        organization_id: Optional[str],
        actor_id: Optional[str],
        subject_user_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        severity: Optional[AuditSeverity] = None,
    ) -> AuditEvent:
        return AuditEvent(
            type=action,
            organization_id=organization_id,
            actor_id=actor_id,
            subject_user_id=subject_user_id,
            timestamp=self.clock(),
            severity=severity or _SEVERITY.get(action, AuditSeverity.info),
            metadata=dict(metadata or {}),
        )

    def stage(self, *args, **kwargs) -> SaveOperation:
        """Build an event and return its write, for inclusion in a transition's transaction."""
        event = self.build(*args, **kwargs)
        return self.repository.stage_save(event, changed_by_id=event.actor_id)

    def record(self, *args, **kwargs) -> AuditEvent:
        """Build and append an event on its own."""
        event = self.build(*args, **kwargs)
        self.repository.save(event, changed_by_id=event.actor_id)
        logger.debug("Recorded %s for organization %s", event.type, event.organization_id)
        return event

    def for_organization(self, organization_id: str, limit: int = None) -> List[AuditEvent]:
        return self.repository.for_organization(organization_id, limit=limit)

    def for_user(self, user_id: str, limit: int = None) -> List[AuditEvent]:
        """Events about `user_id` (e.g. their revoked sessions), newest first."""
        return self.repository.for_subject(user_id, limit=limit)
