"""
Package: sqs_service
Description: Thin async wrapper around Amazon SQS.

Forwards queue operations to aioboto3 while adding default configuration
merging, an event emitter logging facade, JSON envelope framing of message
bodies and a queue name registry.

Example:
    >>> from sqs_service import SQS
    >>> sqs = await SQS("orders").init()
    >>> await sqs.create_queue("orders-created")
    >>> await sqs.publish("orders-created", {"order_id": "123"})
"""

from .events.emitter import EventEmitter, ServiceEvent, create_logging_emitter
from .models.message import FifoGroup, MessageEnvelope, MessageInfo, ReceivedMessage
from .sqs_queue.consumer import Consumer
from .sqs_queue.errors import QueueDoesNotExistError, SQSServiceError
from .sqs_queue.sqs import SQS

__version__ = "1.0.0"

__all__ = [
    "SQS",
    "Consumer",
    "EventEmitter",
    "ServiceEvent",
    "create_logging_emitter",
    "FifoGroup",
    "MessageEnvelope",
    "MessageInfo",
    "ReceivedMessage",
    "QueueDoesNotExistError",
    "SQSServiceError",
]
