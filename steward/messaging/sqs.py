"""A connection to AWS SQS for publishing and consuming steward events."""
import json
import logging
from typing import Callable, Optional

import boto3

from .base import MessageAdapter

logger = logging.getLogger(__name__)


class SqsConnection(MessageAdapter):
    """A connection to AWS SQS that allows sending and receiving messages to and from queues."""

    def __init__(self, aws_access_key_id: str = None,
                 aws_access_key_secret: str = None,
                 region_name: str = None,
                 wait_time_seconds: int = 20):
        """Initializes a new SQS connection.

        Args:
            aws_access_key_id (str): The AWS access key ID.
            aws_access_key_secret (str): The AWS access key secret.
            region_name (str): The AWS region name.
            wait_time_seconds (int): Long-poll duration when consuming.
        """
        self._region_name = region_name
        self._wait_time_seconds = wait_time_seconds
        self._sqs = boto3.resource('sqs',
                                   aws_access_key_id=aws_access_key_id,
                                   aws_secret_access_key=aws_access_key_secret,
                                   region_name=region_name)
        self._queue_map = {}

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        pass

    def _get_queue(self, queue_name: str):
        if queue_name not in self._queue_map:
            self._queue_map[queue_name] = self._sqs.create_queue(QueueName=queue_name)
        return self._queue_map[queue_name]

    def send_message(self, queue_name: str, message: dict):
        """Sends a JSON message to the specified SQS queue."""
        self._get_queue(queue_name).send_message(MessageBody=json.dumps(message))

    def consume_messages(self, queue_name: str, callback_function: Callable[[dict], None] = None,
                         max_batches: Optional[int] = None):
        """Consumes messages from the specified SQS queue.

        Messages are deleted after the callback runs, whether or not it raised.
        Stops after `max_batches` receive calls when given, otherwise polls forever.
        """
        queue = self._get_queue(queue_name)
        batches = 0
        while max_batches is None or batches < max_batches:
            batches += 1
            responses = queue.receive_messages(
                AttributeNames=['All'],
                MaxNumberOfMessages=10,
                WaitTimeSeconds=self._wait_time_seconds
            )
            for response in responses:
                try:
                    if callback_function is not None:
                        callback_function(json.loads(response.body))
                except Exception:  # pylint: disable=W0718
                    logger.exception("Error processing message from %s", queue_name)
                response.delete()
