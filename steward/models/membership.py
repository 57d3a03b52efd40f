"""
Membership model
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .versioned_model import VersionedModel, default_datetime
from .enums import Role


@dataclass
class Membership(VersionedModel):
    """A person's role within an organization."""

    organization_id: Optional[str] = None
    user_id: Optional[str] = None
    role: Role = Role.member
    joined_at: datetime = field(default_factory=default_datetime)

    def validate_role(self):
        if not isinstance(self.role, Role):
            return f"Invalid role {self.role!r}."
        return None
