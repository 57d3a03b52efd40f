"""
OwnershipTransferRequest model
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .versioned_model import VersionedModel
from .enums import TransferStatus


@dataclass
class OwnershipTransferRequest(VersionedModel):
    """A proposal to hand an organization's ownership to another member."""

    organization_id: Optional[str] = None
    from_user_id: Optional[str] = None
    to_user_id: Optional[str] = None
    message: Optional[str] = None
    reason: Optional[str] = None
    transfer_token: Optional[str] = None
    status: TransferStatus = TransferStatus.proposed
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    def effective_status(self, now: datetime) -> TransferStatus:
        """Stored status, reporting a still-proposed request past its expiry as expired."""
        if self.status == TransferStatus.proposed and self.expires_at is not None and now >= self.expires_at:
            return TransferStatus.expired
        return self.status

    def is_pending(self, now: datetime) -> bool:
        return self.effective_status(now) == TransferStatus.proposed
