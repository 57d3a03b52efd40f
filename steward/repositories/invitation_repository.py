from typing import List

from steward.models import Invitation
from .base_repository import BaseRepository


class InvitationRepository(BaseRepository):
    def __init__(self, adapter, message_adapter=None, message_queue_name='placeholder'):
        super().__init__(adapter, Invitation, message_adapter, message_queue_name)

    def list_for_organization(self, organization_id: str) -> List[Invitation]:
        return self.get_many({"organization_id": organization_id})
