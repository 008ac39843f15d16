"""
Module: models
Description: Package initialization for message data models.

This package contains the data models exchanged with SQS:
- MessageEnvelope: {content, meta} framing of message bodies
- MessageInfo: SQS identifiers and attributes of a received message
- ReceivedMessage: Parsed message data with ack/nack actions
- FifoGroup: Message group and deduplication ids for FIFO queues

All models are exported here for convenient importing.
"""

from .message import FifoGroup, MessageEnvelope, MessageInfo, ReceivedMessage

__all__ = [
    "FifoGroup",
    "MessageEnvelope",
    "MessageInfo",
    "ReceivedMessage",
]
