from typing import List, Optional

from steward.models import Membership, Role
from .base_repository import BaseRepository


class MembershipRepository(BaseRepository):
    def __init__(self, adapter, message_adapter=None, message_queue_name='placeholder'):
        super().__init__(adapter, Membership, message_adapter, message_queue_name)

    def get_membership(self, organization_id: str, user_id: str) -> Optional[Membership]:
        return self.get_one({"organization_id": organization_id, "user_id": user_id})

    def get_role(self, organization_id: str, user_id: str) -> Optional[Role]:
        """Role of `user_id` in the organization, or None for non-members."""
        membership = self.get_membership(organization_id, user_id)
        return membership.role if membership else None

    def list_members(self, organization_id: str) -> List[Membership]:
        return self.get_many({"organization_id": organization_id}, sort=[("joined_at", 1)])

    def get_owners(self, organization_id: str) -> List[Membership]:
        return self.get_many({"organization_id": organization_id, "role": Role.owner})

    def find_organizations_by_member(self, user_id: str) -> List[Membership]:
        """finds the memberships of the person identified by user_id, one per organization"""
        return self.get_many({"user_id": user_id})
