"""
Lifecycle event publication.

Notification delivery is a fire-and-forget consumer of these events: a transition
commits regardless of whether its event could be published.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from steward.models.versioned_model import default_datetime
from .base import MessageAdapter

logger = logging.getLogger(__name__)


class LifecycleEvent(str, Enum):
    ownership_transfer_proposed = 'OwnershipTransferProposed'
    ownership_transfer_accepted = 'OwnershipTransferAccepted'
    ownership_transfer_cancelled = 'OwnershipTransferCancelled'
    organization_soft_deleted = 'OrganizationSoftDeleted'
    organization_restored = 'OrganizationRestored'
    organization_purged = 'OrganizationPurged'

    def __str__(self):
        return str(self.value)


def _serializable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _serializable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serializable(v) for v in value]
    return value


class EventPublisher:
    """Publishes lifecycle events to a queue, best-effort."""

    def __init__(self, message_adapter: Optional[MessageAdapter], queue_name: str,
                 clock: Callable[[], datetime] = default_datetime):
        self.message_adapter = message_adapter
        self.queue_name = queue_name
        self.clock = clock

    def publish(self, event: LifecycleEvent, organization_id: str, actor_id: Optional[str],
                recipient_ids: Optional[List[str]] = None, payload: Optional[Dict[str, Any]] = None) -> bool:
        """
        Publish an event envelope. Returns False, after logging, if the transport failed.
        """
        envelope = {
            'event': LifecycleEvent(event).value,
            'organization_id': organization_id,
            'actor_id': actor_id,
            'recipient_ids': list(recipient_ids or []),
            'occurred_at': self.clock().isoformat(),
            'payload': _serializable(payload or {}),
        }
        if self.message_adapter is None:
            logger.debug("No message adapter configured; dropping %s", envelope['event'])
            return False
        try:
            with self.message_adapter:
                self.message_adapter.send_message(self.queue_name, envelope)
        except Exception:  # pylint: disable=W0718
            logger.warning("Failed to publish %s for organization %s", envelope['event'], organization_id,
                           exc_info=True)
            return False
        return True
