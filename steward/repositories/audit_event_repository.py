from typing import List

from steward.models import AuditEvent
from .base_repository import BaseRepository


class AuditEventRepository(BaseRepository):
    def __init__(self, adapter, message_adapter=None, message_queue_name='placeholder'):
        super().__init__(adapter, AuditEvent, message_adapter, message_queue_name)

    def for_organization(self, organization_id: str, limit: int = None) -> List[AuditEvent]:
        return self.get_many({"organization_id": organization_id}, sort=[("timestamp", -1)], limit=limit)

    def for_subject(self, user_id: str, limit: int = None) -> List[AuditEvent]:
        return self.get_many({"subject_user_id": user_id}, sort=[("timestamp", -1)], limit=limit)
