"""
OrganizationDeletionRequest model
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .versioned_model import VersionedModel
from .enums import DeletionState, DeletionStatus, DeletionType, ExportFormat


_STATUS_BY_STATE = {
    DeletionState.restored: DeletionStatus.restored,
    DeletionState.purged: DeletionStatus.purged,
    DeletionState.cancelled: DeletionStatus.cancelled,
}


@dataclass
class OrganizationDeletionRequest(VersionedModel):
    """A request to delete an organization, walked through the confirmation protocol."""

    organization_id: Optional[str] = None
    requested_by: Optional[str] = None
    state: DeletionState = DeletionState.none
    deletion_type: Optional[DeletionType] = None
    name_confirmed: bool = False
    confirmation_phrase_verified: bool = False
    data_export_requested: bool = False
    export_format: Optional[ExportFormat] = None
    export_url: Optional[str] = None
    reason: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    requested_at: Optional[datetime] = None
    scheduled_purge_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    @property
    def status(self) -> DeletionStatus:
        return _STATUS_BY_STATE.get(self.state, DeletionStatus.pending)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def within_grace_period(self, now: datetime) -> bool:
        return (
            self.deletion_type == DeletionType.soft
            and self.scheduled_purge_at is not None
            and now < self.scheduled_purge_at
        )
