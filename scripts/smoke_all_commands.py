#!/usr/bin/env python3
"""
Smoke test of every SQS wrapper command against a live or emulated SQS.

Creates a standard and a FIFO queue, then runs init, create_queue,
get_queue_url, publish (with and without delay), publish_batch,
publish_fifo, fetch_messages, fetch_one, ack, nack, subscribe and the
error path, printing a PASS/FAIL line per command.

Usage:
    python scripts/smoke_all_commands.py
    python scripts/smoke_all_commands.py --endpoint http://localhost:4566
"""

import argparse
import asyncio
import sys
from uuid import uuid4

from sqs_service.events.emitter import create_logging_emitter
from sqs_service.sqs_queue.errors import QueueDoesNotExistError
from sqs_service.sqs_queue.sqs import SQS

STANDARD_QUEUE = "test-standard"
FIFO_QUEUE = "test-fifo.fifo"


def get_group():
    return {'name': 'test-group', 'id': str(uuid4())}


class SmokeTester:
    """Runs the wrapper commands and records results."""

    def __init__(self, sqs: SQS):
        self.sqs = sqs
        self.results = []

    async def test(self, name, test_func):
        """Run a test and record results."""
        print(f"\n[TEST] {name}")
        try:
            result = await test_func()
            if result is False:
                print(f"[FAIL] {name}")
                self.results.append((name, False, "Test returned False"))
                return False
            print(f"[PASS] {name}")
            self.results.append((name, True, None))
            return True
        except Exception as e:
            print(f"[FAIL] {name} - {str(e)}")
            self.results.append((name, False, str(e)))
            return False

    async def run(self):
        sqs = self.sqs

        async def create_queues():
            await sqs.create_queue(STANDARD_QUEUE)
            await sqs.create_queue(FIFO_QUEUE, {'FifoQueue': True})

        async def get_queue_url():
            url = sqs.get_queue_url(STANDARD_QUEUE)
            print(f"    Got URL: {url}")
            return bool(url)

        async def publish():
            await sqs.publish(STANDARD_QUEUE, {'msg': 'test'}, {})
            await sqs.publish(STANDARD_QUEUE, {'msg': 'delayed'}, {}, True, delay=5)

        async def publish_batch():
            response = await sqs.publish_batch(STANDARD_QUEUE, [
                {'id': '1', 'body': {'name': 'test1'}},
                {'id': '2', 'body': {'name': 'test2'}},
                {'id': '3', 'body': {'name': 'test3'}},
                {'id': '4', 'body': {'name': 'test4'}},
            ])
            return response is not None and not response['Failed']

        async def publish_fifo():
            for i in range(1, 6):
                await sqs.publish_fifo(FIFO_QUEUE, {'msg': f"test-{i}"}, {}, get_group())

        fetched = []

        async def fetch_messages():
            fetched.extend(await sqs.fetch_messages(FIFO_QUEUE, 3, wait_time_seconds=2))
            print(f"    Fetched {len(fetched)} messages")

        async def fetch_one():
            one = await sqs.fetch_one(FIFO_QUEUE)
            print("    Fetched one message" if one else "    No messages available")

        async def ack():
            if fetched:
                await fetched[0][0].ack()

        async def nack():
            if len(fetched) > 1:
                await fetched[1][0].nack()

        async def subscribe():
            received = []

            def on_message(message, info):
                received.append(info.id)
                message.ack()

            consumer = await sqs.subscribe(FIFO_QUEUE, on_message, max_in_progress=2, wait_time_seconds=1)
            await asyncio.sleep(3)
            await consumer.close()
            print(f"    Subscription processed {len(received)} messages")

        async def error_handling():
            try:
                await sqs.publish('non-existent', {'test': True}, {}, False)
            except QueueDoesNotExistError:
                return True
            return False

        await self.test("createQueue", create_queues)
        await self.test("getQueueUrl", get_queue_url)
        await self.test("publish", publish)
        await self.test("publishBatch", publish_batch)
        await self.test("publishFifo", publish_fifo)
        await asyncio.sleep(2)
        await self.test("fetchMessages", fetch_messages)
        await self.test("fetchOne", fetch_one)
        await self.test("deleteMessage via ack", ack)
        await self.test("returnMessage via nack", nack)
        await self.test("subscribe", subscribe)
        await self.test("error handling", error_handling)

    def print_summary(self):
        passed = sum(1 for _, ok, _ in self.results if ok)
        print("\n" + "=" * 60)
        print(f"Results: {passed}/{len(self.results)} passed")
        for name, ok, error in self.results:
            if not ok:
                print(f"  FAILED: {name} ({error})")
        print("=" * 60)
        return passed == len(self.results)


async def main(args):
    config = {'region': args.region}
    if args.endpoint:
        config['endpoint'] = args.endpoint

    async with SQS("sqs", create_logging_emitter(), config) as sqs:
        tester = SmokeTester(sqs)
        await tester.run()
        return tester.print_summary()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run every SQS wrapper command once")
    parser.add_argument("--region", default="us-east-1", help="AWS region (default: us-east-1)")
    parser.add_argument("--endpoint", default=None, help="SQS endpoint URL, e.g. a local emulator")

    ok = asyncio.run(main(parser.parse_args()))
    sys.exit(0 if ok else 1)
