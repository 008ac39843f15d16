"""
Module: test_sqs_moto.py
Description: Integration tests against an emulated SQS endpoint.

Runs moto's ThreadedMotoServer and drives the wrapper through aioboto3
over HTTP, exercising every command end to end: init, create_queue,
publish, publish_batch, publish_fifo, fetch, ack/nack and subscribe.
Queue names are unique per test since server state is shared.
"""

import asyncio
from uuid import uuid4

import boto3
import pytest
import pytest_asyncio
from moto.server import ThreadedMotoServer

from sqs_service.sqs_queue.errors import QueueDoesNotExistError
from sqs_service.sqs_queue.sqs import SQS

MOTO_PORT = 5055
CREDENTIALS = {
    'access_key_id': 'testing',
    'secret_access_key': 'testing',
}


def unique(prefix):
    return f"{prefix}-{uuid4().hex[:8]}"


async def eventually(predicate, timeout=10.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.05)


@pytest.fixture(scope="module")
def moto_endpoint():
    """
    Run an emulated SQS endpoint for the module.

    Uses moto's threaded server so aioboto3 talks to it over HTTP.
    """
    server = ThreadedMotoServer(ip_address="127.0.0.1", port=MOTO_PORT, verbose=False)
    server.start()
    yield f"http://127.0.0.1:{MOTO_PORT}"
    server.stop()


@pytest.fixture
def boto_sqs(moto_endpoint):
    """Plain boto3 client for checking queue state independently."""
    return boto3.client(
        'sqs',
        region_name='us-east-1',
        endpoint_url=moto_endpoint,
        aws_access_key_id='testing',
        aws_secret_access_key='testing'
    )


@pytest_asyncio.fixture
async def sqs(moto_endpoint, emitter):
    """Provide an initialized wrapper pointed at the emulated endpoint."""
    wrapper = SQS(
        "sqs",
        emitter,
        {'region': 'us-east-1', 'endpoint': moto_endpoint, **CREDENTIALS}
    )
    await wrapper.init()
    yield wrapper
    await wrapper.close()


def queue_depth(boto_sqs, queue_url):
    attributes = boto_sqs.get_queue_attributes(
        QueueUrl=queue_url,
        AttributeNames=['ApproximateNumberOfMessages']
    )['Attributes']
    return int(attributes['ApproximateNumberOfMessages'])


class TestSQSIntegration:
    """End to end tests of the wrapper commands."""

    @pytest.mark.asyncio
    async def test_init_lists_existing_queues(self, moto_endpoint, boto_sqs, emitter):
        """Test queues created elsewhere are registered at init."""
        name = unique("existing")
        queue_url = boto_sqs.create_queue(QueueName=name)['QueueUrl']

        async with SQS("sqs", emitter, {'endpoint': moto_endpoint, **CREDENTIALS}) as wrapper:
            assert wrapper.queues[name] == queue_url
            assert wrapper.get_queue_url(name) == queue_url

    @pytest.mark.asyncio
    async def test_publish_fetch_ack(self, sqs, recorder):
        """Test a published message is fetched and deleted on ack."""
        name = unique("standard")
        await sqs.create_queue(name)

        response = await sqs.publish(name, {'msg': 'test'}, {'source': 'it'})
        assert response['MessageId']

        messages = await sqs.fetch_messages(name, 10, wait_time_seconds=1)
        assert len(messages) == 1

        message, info = messages[0]
        assert message.data == {'content': {'msg': 'test'}, 'meta': {'source': 'it'}}
        assert info.id == response['MessageId']
        assert info.handle

        await message.ack()
        assert await sqs.fetch_messages(name) == []
        assert recorder.of('error') == []

    @pytest.mark.asyncio
    async def test_nack_returns_message(self, sqs):
        """Test a nacked message is immediately visible again."""
        name = unique("returned")
        await sqs.create_queue(name)
        await sqs.publish(name, "again")

        message, info = await sqs.fetch_one(name)
        await message.nack()

        message, again = await sqs.fetch_one(name)
        assert again.id == info.id
        assert message.content == "again"

    @pytest.mark.asyncio
    async def test_create_queue_is_idempotent(self, sqs, recorder):
        """Test creating a registered queue reuses its URL."""
        name = unique("idempotent")

        first = await sqs.create_queue(name, {'DelaySeconds': 0})
        second = await sqs.create_queue(name)

        assert first == second
        assert recorder.of('log')[-1].message == f"Queue {name} exists => {first}"

    @pytest.mark.asyncio
    async def test_publish_batch(self, sqs, boto_sqs):
        """Test batches larger than ten entries are all sent."""
        name = unique("batch")
        queue_url = await sqs.create_queue(name)

        response = await sqs.publish_batch(name, [{'id': str(i)} for i in range(12)])

        assert len(response['Successful']) == 12
        assert response['Failed'] == []
        assert queue_depth(boto_sqs, queue_url) == 12

    @pytest.mark.asyncio
    async def test_publish_fifo_order_and_dedup(self, sqs, boto_sqs):
        """Test FIFO messages keep group order and duplicates are dropped."""
        name = unique("ordered") + ".fifo"
        queue_url = await sqs.create_queue(name, {'FifoQueue': True})

        for i in range(1, 4):
            await sqs.publish_fifo(name, {'msg': f"test-{i}"}, {}, {'name': 'test-group', 'id': str(uuid4())})
        duplicate_id = str(uuid4())
        await sqs.publish_fifo(name, {'msg': 'dup'}, {}, {'name': 'dup-group', 'id': duplicate_id})
        await sqs.publish_fifo(name, {'msg': 'dup'}, {}, {'name': 'dup-group', 'id': duplicate_id})

        assert queue_depth(boto_sqs, queue_url) == 4

        ordered = []
        for _ in range(10):
            pair = await sqs.fetch_one(name)
            if pair is None:
                break
            message, _info = pair
            if message.meta == {} and message.content['msg'].startswith("test-"):
                ordered.append(message.content['msg'])
            await message.ack()

        assert ordered == ["test-1", "test-2", "test-3"]

    @pytest.mark.asyncio
    async def test_subscribe(self, sqs):
        """Test subscribed callbacks receive and ack every message."""
        name = unique("subscribed")
        await sqs.create_queue(name)
        for i in range(3):
            await sqs.publish(name, {'n': i})

        received = []

        async def on_message(message, info):
            received.append(message.content['n'])
            await message.ack()

        consumer = await sqs.subscribe(name, on_message, max_in_progress=2, wait_time_seconds=1)
        try:
            await eventually(lambda: len(received) == 3)
        finally:
            await consumer.close()

        assert sorted(received) == [0, 1, 2]
        assert await sqs.fetch_messages(name) == []

    @pytest.mark.asyncio
    async def test_unknown_queue(self, sqs, recorder):
        """Test publishing to an unknown queue follows the handle flag."""
        assert await sqs.publish('non-existent', {'test': True}) is None

        with pytest.raises(QueueDoesNotExistError):
            await sqs.publish('non-existent', {'test': True}, {}, False)

        assert len(recorder.of('error')) == 2
