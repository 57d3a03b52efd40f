from typing import List

from steward.models import Organization
from .base_repository import BaseRepository


class OrganizationRepository(BaseRepository):
    def __init__(self, adapter, message_adapter=None, message_queue_name='placeholder'):
        super().__init__(adapter, Organization, message_adapter, message_queue_name)

    def find_by_ids(self, organization_ids: List[str]) -> List[Organization]:
        if not organization_ids:
            return []
        return self.get_many({"entity_id": {"$in": list(organization_ids)}})
