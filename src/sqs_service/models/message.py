"""
Module: message.py
Description: Data models for messages sent to and received from SQS.

Key Components:
- MessageEnvelope: {content, meta} body framing
- MessageInfo: MessageId, ReceiptHandle and attributes of a received message
- ReceivedMessage: Parsed data plus ack()/nack() actions
- FifoGroup: MessageGroupId / MessageDeduplicationId pair

Dependencies: pydantic, asyncio, typing
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils.json_helpers import dumps_envelope, safe_json


class MessageEnvelope(BaseModel):
    """
    Envelope serialized into the SQS message body.

    Attributes:
        content: Message content, any JSON value
        meta: Metadata shared by producer and consumer
    """

    content: Any = Field(default=None, description="Message content")
    meta: Dict[str, Any] = Field(default_factory=dict, description="Message metadata")

    @field_validator('meta', mode='before')
    @classmethod
    def default_meta(cls, v: Any) -> Dict[str, Any]:
        """Treat a missing meta as an empty dictionary."""
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("meta must be a dictionary")
        return v

    def to_body(self) -> str:
        """Serialize the envelope into an SQS message body."""
        return dumps_envelope(self.content, self.meta)


class MessageInfo(BaseModel):
    """
    SQS identifiers and attributes of a received message.

    Attributes:
        id: SQS MessageId
        handle: ReceiptHandle used to delete or return the message
        queue_attributes: System attributes (ApproximateReceiveCount, ...)
        message_attributes: Producer supplied message attributes
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    handle: Optional[str] = None
    queue_attributes: Optional[Dict[str, Any]] = None
    message_attributes: Optional[Dict[str, Any]] = None

    @classmethod
    def from_sqs(cls, raw: Dict[str, Any]) -> "MessageInfo":
        """Build from a message dict of a ReceiveMessage response."""
        return cls(
            id=raw.get('MessageId'),
            handle=raw.get('ReceiptHandle'),
            queue_attributes=raw.get('Attributes'),
            message_attributes=raw.get('MessageAttributes')
        )


class FifoGroup(BaseModel):
    """
    Ordering and deduplication identifiers for FIFO publishes.

    Attributes:
        name: MessageGroupId, messages sharing it are delivered in order
        id: MessageDeduplicationId, omit for content based deduplication
    """

    name: str = Field(..., min_length=1, max_length=128, description="Message group id")
    id: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=128,
        description="Message deduplication id"
    )

    @classmethod
    def coerce(cls, group: Union["FifoGroup", Dict[str, Any], None]) -> "FifoGroup":
        """
        Accept a FifoGroup or a {"name": ..., "id": ...} dictionary.

        Raises:
            ValueError: If no group is given or it has no name
        """
        if isinstance(group, cls):
            return group
        if not group or not isinstance(group, dict):
            raise ValueError("group must provide a name for FIFO publishing")
        return cls(**group)


Settle = Callable[..., Union[None, Awaitable[Any]]]


class ReceivedMessage:
    """
    A message handed to subscribers and returned by fetch operations.

    ack() and nack() start settling the message immediately and return an
    awaitable; awaiting it waits for SQS to confirm. Calling them without
    awaiting is allowed inside a running event loop.

    Attributes:
        data: Message body parsed with safe_json (the envelope dict for
              messages published by this package)
        info: MessageInfo of the message
    """

    def __init__(
        self,
        body: Optional[str],
        info: MessageInfo,
        on_ack: Settle,
        on_nack: Settle
    ):
        self.data = safe_json(body)
        self.info = info
        self._on_ack = on_ack
        self._on_nack = on_nack
        self._pending = []

    @property
    def content(self) -> Any:
        """Envelope content, or the whole data for foreign messages."""
        if isinstance(self.data, dict) and 'content' in self.data:
            return self.data['content']
        return self.data

    @property
    def meta(self) -> Dict[str, Any]:
        """Envelope meta, {} for foreign messages."""
        if isinstance(self.data, dict) and isinstance(self.data.get('meta'), dict):
            return self.data['meta']
        return {}

    def ack(self) -> "asyncio.Future":
        """Mark the message processed."""
        return self._settle(self._on_ack)

    def nack(self, err: Optional[BaseException] = None) -> "asyncio.Future":
        """Mark the message failed so it is delivered again."""
        return self._settle(self._on_nack, err)

    def _settle(self, action: Settle, *args: Any) -> "asyncio.Future":
        async def run():
            result = action(*args)
            if inspect.isawaitable(result):
                return await result
            return result

        task = asyncio.ensure_future(run())
        self._pending.append(task)
        return task

    def __repr__(self) -> str:
        return f"ReceivedMessage(id={self.info.id!r}, data={self.data!r})"
