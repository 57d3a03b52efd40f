"""Module for messaging"""
import logging

from .base import MessageAdapter
from .events import EventPublisher, LifecycleEvent

logger = logging.getLogger(__name__)

try:
    from .sqs import SqsConnection
except ImportError:
    logger.info("SqsConnection not loaded - probably, missing dependencies")

try:
    from .rabbitmq import RabbitMqConnection
except ImportError:
    logger.info("RabbitMqConnection not loaded - probably, missing dependencies")
