"""
Tests for AWS SQS message queue connection and operations.
"""
import json
import unittest
from unittest.mock import MagicMock, patch

from steward.messaging.sqs import SqsConnection


# Test constants
TEST_AWS_KEY_ID = "test_access_key_id"
TEST_AWS_KEY_SECRET = "test_access_key_secret"
TEST_REGION = "us-east-1"
TEST_QUEUE_NAME = "steward-events"
TEST_MESSAGE = {"event": "OrganizationRestored", "organization_id": "org"}


class TestSqsConnection(unittest.TestCase):
    """Test SQS sending and consuming."""

    @patch('steward.messaging.sqs.boto3.resource')
    def test_init_creates_boto3_resource(self, mock_boto3_resource):
        """
        Test that initialization creates the boto3 SQS resource with credentials.
        """
        SqsConnection(TEST_AWS_KEY_ID, TEST_AWS_KEY_SECRET, TEST_REGION)
        mock_boto3_resource.assert_called_once_with(
            'sqs',
            aws_access_key_id=TEST_AWS_KEY_ID,
            aws_secret_access_key=TEST_AWS_KEY_SECRET,
            region_name=TEST_REGION
        )

    @patch('steward.messaging.sqs.boto3.resource')
    def test_send_message_serializes_json(self, mock_boto3_resource):
        """
        Test that messages are sent as JSON bodies and queues are cached.
        """
        mock_sqs = MagicMock()
        mock_boto3_resource.return_value = mock_sqs
        mock_queue = mock_sqs.create_queue.return_value

        with SqsConnection(TEST_AWS_KEY_ID, TEST_AWS_KEY_SECRET, TEST_REGION) as connection:
            connection.send_message(TEST_QUEUE_NAME, TEST_MESSAGE)
            connection.send_message(TEST_QUEUE_NAME, TEST_MESSAGE)

        mock_sqs.create_queue.assert_called_once_with(QueueName=TEST_QUEUE_NAME)
        self.assertEqual(mock_queue.send_message.call_count, 2)
        body = mock_queue.send_message.call_args[1]['MessageBody']
        self.assertEqual(json.loads(body), TEST_MESSAGE)

    @patch('steward.messaging.sqs.boto3.resource')
    def test_consume_deletes_after_callback(self, mock_boto3_resource):
        """
        Test that each message is passed to the callback and then deleted, even on error.
        """
        mock_sqs = MagicMock()
        mock_boto3_resource.return_value = mock_sqs
        good, bad = MagicMock(body=json.dumps(TEST_MESSAGE)), MagicMock(body=json.dumps({"boom": True}))
        mock_sqs.create_queue.return_value.receive_messages.return_value = [good, bad]

        received = []

        def callback(message):
            if message.get("boom"):
                raise ValueError("boom")
            received.append(message)

        connection = SqsConnection(TEST_AWS_KEY_ID, TEST_AWS_KEY_SECRET, TEST_REGION, wait_time_seconds=1)
        connection.consume_messages(TEST_QUEUE_NAME, callback, max_batches=1)

        self.assertEqual(received, [TEST_MESSAGE])
        good.delete.assert_called_once()
        bad.delete.assert_called_once()


if __name__ == '__main__':
    unittest.main()
