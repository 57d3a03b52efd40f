from datetime import datetime
from typing import List, Optional

from steward.models import OwnershipTransferRequest, TransferStatus
from .base_repository import BaseRepository


class OwnershipTransferRepository(BaseRepository):
    def __init__(self, adapter, message_adapter=None, message_queue_name='placeholder'):
        super().__init__(adapter, OwnershipTransferRequest, message_adapter, message_queue_name)

    def get_open(self, organization_id: str) -> Optional[OwnershipTransferRequest]:
        """The request stored as proposed, whether or not its expiry has passed."""
        return self.get_one({"organization_id": organization_id, "status": TransferStatus.proposed})

    def count_open(self, organization_id: str) -> int:
        return self.get_count({"organization_id": organization_id, "status": TransferStatus.proposed})

    def find_by_token(self, token: str) -> Optional[OwnershipTransferRequest]:
        return self.get_one({"transfer_token": token})

    def find_proposed_to(self, user_id: str) -> List[OwnershipTransferRequest]:
        return self.get_many({"to_user_id": user_id, "status": TransferStatus.proposed})

    def find_overdue(self, now: datetime) -> List[OwnershipTransferRequest]:
        return self.get_many({"status": TransferStatus.proposed, "expires_at": {"$lte": now}})

    def history(self, organization_id: str) -> List[OwnershipTransferRequest]:
        return self.get_many({"organization_id": organization_id}, sort=[("created_at", -1)])
