"""
    An abstract connection class for the transports that carry steward's
    lifecycle events to their consumers (notification delivery, activity timeline).
"""
from abc import abstractmethod
from typing import Callable


class MessageAdapter:
    """Abstract class for a connection to a message queue."""

    @abstractmethod
    def send_message(self, queue_name: str, message: dict):
        """
        Sends a message to the specified queue.

        Args:
            queue_name (str): The name of the queue to send the message to.
            message (dict): The JSON-serializable message to send.
        """

    @abstractmethod
    def consume_messages(self, queue_name: str, callback_function: Callable[[dict], None] = None):
        """
        Consumes messages from the specified queue.

        Args:
            queue_name (str): The name of the queue to consume messages from.
            callback_function (callable): The function to call with each decoded message.
        """

    @abstractmethod
    def __enter__(self):
        """Performs any initialization required for the connection."""

    @abstractmethod
    def __exit__(self, exc_type, exc_value, traceback):
        """Performs any cleanup required for the connection."""
