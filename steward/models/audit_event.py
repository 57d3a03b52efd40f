"""
AuditEvent model
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .versioned_model import VersionedModel, default_datetime
from .enums import AuditAction, AuditSeverity


@dataclass
class AuditEvent(VersionedModel):
    """An append-only activity log entry."""

    type: Optional[AuditAction] = None
    organization_id: Optional[str] = None
    actor_id: Optional[str] = None
    subject_user_id: Optional[str] = None
    timestamp: datetime = field(default_factory=default_datetime)
    severity: AuditSeverity = AuditSeverity.info
    metadata: Dict[str, Any] = field(default_factory=dict)
