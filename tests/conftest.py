"""
Module: conftest.py
Description: Shared pytest fixtures for SQS wrapper tests.

Provides an event recorder, a fake aioboto3 session handing out an
AsyncMock SQS client for unit tests, and an emulated SQS endpoint
(moto's ThreadedMotoServer) for integration tests.
"""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock

from sqs_service.events.emitter import EventEmitter
from sqs_service.sqs_queue.sqs import SQS

QUEUE_BASE_URL = "https://sqs.us-east-1.amazonaws.com/123456789012"


class EventRecorder:
    """Records every wrapper event emitted on an EventEmitter."""

    def __init__(self, emitter: EventEmitter):
        self.events = []
        for name in ("log", "success", "error"):
            emitter.on(name, lambda payload, name=name: self.events.append((name, payload)))

    def of(self, name):
        """Payloads of all events with the given name."""
        return [payload for event, payload in self.events if event == name]


class _ClientContext:
    """Async context manager returned by FakeSession.client()."""

    def __init__(self, client):
        self._client = client
        self.closed = False

    async def __aenter__(self):
        return self._client

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True
        return False


class FakeSession:
    """Stands in for aioboto3.Session, records client kwargs."""

    def __init__(self, client):
        self.sqs_client = client
        self.service_name = None
        self.client_kwargs = None
        self.context = None

    def client(self, service_name, **kwargs):
        self.service_name = service_name
        self.client_kwargs = kwargs
        self.context = _ClientContext(self.sqs_client)
        return self.context


@pytest.fixture
def emitter():
    """Provide a bare EventEmitter."""
    return EventEmitter()


@pytest.fixture
def recorder(emitter):
    """Provide an EventRecorder attached to the emitter fixture."""
    return EventRecorder(emitter)


@pytest.fixture
def sqs_client():
    """
    Provide an AsyncMock SQS client with typical responses.

    Two queues exist: a standard queue and a FIFO queue.
    """
    client = AsyncMock()
    client.list_queues.return_value = {
        'QueueUrls': [
            f"{QUEUE_BASE_URL}/orders",
            f"{QUEUE_BASE_URL}/orders.fifo",
        ]
    }
    client.create_queue.return_value = {'QueueUrl': f"{QUEUE_BASE_URL}/created"}
    client.send_message.return_value = {'MessageId': 'msg-1', 'MD5OfMessageBody': 'abc'}
    client.send_message_batch.side_effect = lambda **params: {
        'Successful': [{'Id': entry['Id'], 'MessageId': f"msg-{entry['Id']}"} for entry in params['Entries']],
        'Failed': []
    }
    client.receive_message.return_value = {}
    client.delete_message.return_value = {}
    client.change_message_visibility.return_value = {}
    return client


@pytest.fixture
def fake_session(sqs_client):
    """Provide a FakeSession serving the sqs_client fixture."""
    return FakeSession(sqs_client)


@pytest.fixture
def sqs(emitter, fake_session):
    """Provide an uninitialized SQS wrapper on the fake session."""
    return SQS("sqs", emitter, {'region': 'us-east-1'}, session=fake_session)


@pytest_asyncio.fixture
async def connected_sqs(sqs):
    """Provide an SQS wrapper after init()."""
    await sqs.init()
    yield sqs
    await sqs.close()


def raw_message(body, message_id="m-1", receipt_handle="rh-1", **extra):
    """Build a message dict shaped like a ReceiveMessage response entry."""
    message = {
        'MessageId': message_id,
        'ReceiptHandle': receipt_handle,
        'Body': body,
        'Attributes': {'ApproximateReceiveCount': '1'},
        'MessageAttributes': {},
    }
    message.update(extra)
    return message


@pytest.fixture
def make_raw_message():
    """Provide the raw_message builder."""
    return raw_message
