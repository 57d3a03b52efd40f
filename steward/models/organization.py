"""
Organization model
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .versioned_model import VersionedModel
from .enums import OrganizationStatus


@dataclass
class Organization(VersionedModel):
    """An organization model.

    The record's version is the compare-and-set guard shared by the deletion
    lifecycle and the ownership transfer: every transition of either rewrites it.
    Members (with their roles, including `owner`) are maintained through `Membership`.
    """

    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    status: OrganizationStatus = OrganizationStatus.active
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None
    deletion_reason: Optional[str] = None
    scheduled_purge_at: Optional[datetime] = None

    def validate_name(self):
        if not self.name or not self.name.strip():
            return "Organization name is required."
        return None

    @property
    def is_active(self) -> bool:
        return self.status == OrganizationStatus.active

    @property
    def is_purged(self) -> bool:
        return self.status == OrganizationStatus.purged
