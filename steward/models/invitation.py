"""
Invitation model
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .versioned_model import VersionedModel
from .enums import InvitationStatus, Role


@dataclass
class Invitation(VersionedModel):
    """A pending invitation to join an organization. Removed when the organization is purged."""

    organization_id: Optional[str] = None
    email: Optional[str] = None
    role: Role = Role.member
    invited_by: Optional[str] = None
    status: InvitationStatus = InvitationStatus.pending
    expires_at: Optional[datetime] = None
