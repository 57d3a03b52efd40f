"""
Tests for lifecycle event publication.

Publication is best-effort: a broken transport must never surface to the caller.
"""
import unittest
from unittest.mock import MagicMock

from steward.messaging import EventPublisher, LifecycleEvent

from helpers import START, FakeClock, RecordingMessageAdapter


class TestEventPublisher(unittest.TestCase):
    """Test the event envelope and failure handling."""

    def test_envelope(self):
        """
        Test that the envelope carries the event name, recipients and a serializable payload.
        """
        adapter = RecordingMessageAdapter()
        publisher = EventPublisher(adapter, 'events', FakeClock())
        self.assertTrue(publisher.publish(LifecycleEvent.organization_soft_deleted, 'org', 'alice',
                                          recipient_ids=['bob'], payload={'scheduled_purge_at': START}))
        queue, envelope = adapter.sent[0]
        self.assertEqual(queue, 'events')
        self.assertEqual(envelope['event'], 'OrganizationSoftDeleted')
        self.assertEqual(envelope['recipient_ids'], ['bob'])
        self.assertEqual(envelope['occurred_at'], START.isoformat())
        self.assertEqual(envelope['payload'], {'scheduled_purge_at': START.isoformat()})

    def test_transport_failure_is_swallowed(self):
        """
        Test that a transport error is logged and reported as False.
        """
        adapter = MagicMock()
        adapter.send_message.side_effect = ConnectionError("broker down")
        publisher = EventPublisher(adapter, 'events', FakeClock())
        with self.assertLogs('steward.messaging.events', level='WARNING'):
            self.assertFalse(publisher.publish(LifecycleEvent.organization_purged, 'org', None))

    def test_no_adapter(self):
        """
        Test that publishing without a transport is a quiet no-op.
        """
        self.assertFalse(EventPublisher(None, 'events').publish(LifecycleEvent.organization_restored, 'org', 'a'))


if __name__ == '__main__':
    unittest.main()
