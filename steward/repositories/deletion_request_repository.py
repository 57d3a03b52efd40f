from datetime import datetime
from typing import List, Optional

from steward.models import DeletionState, DeletionType, OrganizationDeletionRequest
from .base_repository import BaseRepository

OPEN_STATES = [
    DeletionState.pending_confirm_1,
    DeletionState.pending_confirm_2,
    DeletionState.pending_deletion,
]


class DeletionRequestRepository(BaseRepository):
    def __init__(self, adapter, message_adapter=None, message_queue_name='placeholder'):
        super().__init__(adapter, OrganizationDeletionRequest, message_adapter, message_queue_name)

    def get_open(self, organization_id: str) -> Optional[OrganizationDeletionRequest]:
        """The organization's non-terminal deletion request, if any."""
        return self.get_one({"organization_id": organization_id, "state": {"$in": OPEN_STATES}})

    def count_open(self, organization_id: str) -> int:
        return self.get_count({"organization_id": organization_id, "state": {"$in": OPEN_STATES}})

    def find_due_for_purge(self, now: datetime) -> List[OrganizationDeletionRequest]:
        return self.get_many({
            "state": DeletionState.pending_deletion,
            "deletion_type": DeletionType.soft,
            "scheduled_purge_at": {"$lte": now},
        })

    def history(self, organization_id: str) -> List[OrganizationDeletionRequest]:
        return self.get_many({"organization_id": organization_id}, sort=[("changed_on", -1)])
