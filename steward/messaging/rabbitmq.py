"""
A connection to a RabbitMQ broker for publishing and consuming steward events.
"""
import json
import logging
from typing import Callable

import pika

from .base import MessageAdapter

logger = logging.getLogger(__name__)


class RabbitMqConnection(MessageAdapter):
    """A connection to a RabbitMQ message queue that allows to send and receive messages."""

    def __init__(self, host: str, port: int, username: str, password: str, virtual_host: str = '/'):
        """
        Initializes a new RabbitMQ connection.

        Args:
            host (str): The host of the RabbitMQ server.
            port (int): The port of the RabbitMQ server.
            username (str): The username to use when connecting to the RabbitMQ server.
            password (str): The password to use when connecting to the RabbitMQ server.
            virtual_host (str): The virtual host to use when connecting to the RabbitMQ server.
        """
        self._host = host
        self._port = port
        self._credentials = pika.PlainCredentials(username, password)
        self._virtual_host = virtual_host
        self._connection = None
        self._channel = None
        self._declared = set()

    def __enter__(self):
        self._connection = pika.BlockingConnection(
            pika.ConnectionParameters(host=self._host, port=self._port,
                                      credentials=self._credentials,
                                      virtual_host=self._virtual_host))
        self._channel = self._connection.channel()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if self._connection is not None:
            self._connection.close()
        self._connection = None
        self._channel = None
        self._declared = set()

    def _declare(self, queue_name: str):
        if queue_name not in self._declared:
            self._channel.queue_declare(queue=queue_name, durable=True)
            self._declared.add(queue_name)

    def send_message(self, queue_name: str, message: dict):
        """
        Publishes a persistent JSON message to the specified queue.
        """
        self._declare(queue_name)
        self._channel.basic_publish(
            exchange='',
            routing_key=queue_name,
            body=json.dumps(message),
            properties=pika.BasicProperties(delivery_mode=2, content_type='application/json')
        )

    def consume_messages(self, queue_name: str, callback_function: Callable[[dict], None] = None):
        """
        Consumes messages from the specified queue, acking each one after its callback ran.
        """
        def _on_message(channel, method_frame, _header_frame, body):
            try:
                if callback_function is not None:
                    callback_function(json.loads(body.decode()))
            except Exception:  # pylint: disable=W0718
                logger.exception("Error processing message from %s", queue_name)
            channel.basic_ack(method_frame.delivery_tag)

        self._declare(queue_name)
        self._channel.basic_qos(prefetch_count=1)
        self._channel.basic_consume(queue=queue_name, on_message_callback=_on_message)
        try:
            logger.info('Listening to RabbitMQ queue %s on %s:%s...', queue_name, self._host, self._port)
            self._channel.start_consuming()
        except KeyboardInterrupt:
            logger.info("Exiting gracefully...")
            self._channel.stop_consuming()
