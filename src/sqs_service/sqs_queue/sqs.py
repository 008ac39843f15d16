"""
Module: sqs.py
Description: Async SQS wrapper.

Each operation forwards to one aioboto3 SQS call and adds default
configuration merging, {content, meta} envelope framing of bodies, a
registry of queue names to URLs and reporting through an event emitter
("log", "success" and "error" events carrying a ServiceEvent).

Publish operations take a handle flag: when True (default) SQS errors
are reported on the error channel and None is returned, when False they
are reported and re-raised.

Example:
    >>> sqs = SQS("orders", emitter)
    >>> await sqs.init()
    >>> await sqs.create_queue("orders-created")
    >>> await sqs.publish("orders-created", {"order_id": "123"}, {"source": "api"})
    >>> consumer = await sqs.subscribe("orders-created", on_message)

Dependencies: aioboto3, botocore, pydantic, structlog
"""

import asyncio
import inspect
import json
from contextlib import AsyncExitStack
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from uuid import uuid4

from aioboto3 import Session
from botocore.exceptions import BotoCoreError, ClientError

from ..config.settings import settings
from ..events.emitter import EventEmitter, ServiceEvent, create_logging_emitter
from ..models.message import FifoGroup, MessageEnvelope, MessageInfo, ReceivedMessage
from ..utils.batch_helpers import SQS_MAX_BATCH_ENTRIES, chunk_list, merge_batch_results
from ..utils.logger import get_logger
from .consumer import Consumer
from .errors import QueueDoesNotExistError, SQSServiceError

logger = get_logger(__name__)

# Config keys consumed by the wrapper instead of the SDK client
WRAPPER_CONFIG_KEYS = ('account_id', 'queue_name_prefix')

# Friendly config keys mapped to SDK client keyword arguments
CLIENT_KEY_ALIASES = {
    'region': 'region_name',
    'endpoint': 'endpoint_url',
    'access_key_id': 'aws_access_key_id',
    'secret_access_key': 'aws_secret_access_key',
    'session_token': 'aws_session_token',
}

SECRET_KEY_MARKERS = ('secret', 'token', 'password')

Callback = Callable[[ReceivedMessage, MessageInfo], Any]


class SQS:
    """
    SQS wrapper bound to one name, emitter and configuration.

    Attributes:
        name: Service name attached to every emitted event
        emitter: EventEmitter receiving log/success/error events
        config: Defaults merged with the caller's configuration
        session: aioboto3 session used to open the SQS client
        client: Open aioboto3 SQS client, set by init()
        queues: Registry of queue name to queue URL
    """

    def __init__(
        self,
        name: str,
        emitter: Optional[EventEmitter] = None,
        config: Optional[Dict[str, Any]] = None,
        session: Optional[Session] = None
    ):
        """
        Initialize the wrapper. No connection is made until init().

        Args:
            name: Service name used in emitted events
            emitter: Event emitter, defaults to one that logs via structlog
            config: Overrides for the defaults (region, endpoint, account_id,
                    queue_name_prefix, credentials or any SDK client kwarg)
            session: aioboto3 Session, defaults to a new one

        Raises:
            ValueError: If name is empty
        """
        if not name or not isinstance(name, str):
            raise ValueError("name must be a non-empty string")

        defaults: Dict[str, Any] = {'region': settings.aws_region}
        if settings.sqs_endpoint_url:
            defaults['endpoint'] = settings.sqs_endpoint_url
        if settings.aws_account_id:
            defaults['account_id'] = settings.aws_account_id

        self.name = name
        self.emitter = emitter if emitter is not None else create_logging_emitter()
        self.config = {**defaults, **(config or {})}
        self.session = session or Session()
        self.client = None
        self.queues: Dict[str, str] = {}
        self._exit_stack: Optional[AsyncExitStack] = None

    async def __aenter__(self) -> "SQS":
        return await self.init()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Event facade
    # ------------------------------------------------------------------

    def log(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Emit a "log" event."""
        self.emitter.emit("log", ServiceEvent(service=self.name, message=message, data=data))

    def success(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Emit a "success" event."""
        self.emitter.emit("success", ServiceEvent(service=self.name, message=message, data=data))

    def error(self, err: BaseException, data: Optional[Dict[str, Any]] = None) -> None:
        """
        Emit an "error" event.

        Falls back to structlog when the emitter has no error listener so
        errors are never silently dropped.
        """
        event = ServiceEvent(service=self.name, message=str(err), data=data, err=err)
        if not self.emitter.emit("error", event):
            logger.error(
                "Unhandled SQS error event",
                service=self.name,
                error=str(err),
                error_type=type(err).__name__
            )

    # ------------------------------------------------------------------
    # Connection and registry
    # ------------------------------------------------------------------

    def _client_kwargs(self) -> Dict[str, Any]:
        kwargs = {}
        for key, value in self.config.items():
            if key in WRAPPER_CONFIG_KEYS or value is None:
                continue
            kwargs[CLIENT_KEY_ALIASES.get(key, key)] = value
        return kwargs

    def _public_config(self) -> Dict[str, Any]:
        """Configuration with credentials masked, safe to emit."""
        return {
            key: "***" if any(marker in key.lower() for marker in SECRET_KEY_MARKERS) else value
            for key, value in self.config.items()
        }

    def _require_client(self):
        if self.client is None:
            raise SQSServiceError(f"SQS:{self.name} is not initialized, call init() first")
        return self.client

    async def _connect(self) -> None:
        if self.client is not None:
            return

        stack = AsyncExitStack()
        self.client = await stack.enter_async_context(
            self.session.client('sqs', **self._client_kwargs())
        )
        self._exit_stack = stack

    def _process_queue_urls(self, queue_urls: List[str]) -> None:
        for queue_url in queue_urls:
            queue_name = queue_url.rstrip('/').split('/')[-1]
            self.queues[queue_name] = queue_url

    async def _list_queues(self, queue_name_prefix: Optional[str]) -> None:
        next_token = None
        while True:
            params: Dict[str, Any] = {'MaxResults': 100}
            if queue_name_prefix:
                params['QueueNamePrefix'] = queue_name_prefix
            if next_token:
                params['NextToken'] = next_token

            response = await self.client.list_queues(**params)
            self._process_queue_urls(response.get('QueueUrls', []))

            next_token = response.get('NextToken')
            if not next_token:
                break

        logger.debug("Listed SQS queues", service=self.name, queues=list(self.queues))

    async def init(self, queue_name_prefix: Optional[str] = None) -> "SQS":
        """
        Open the SQS client and register the existing queues.

        Args:
            queue_name_prefix: Only list queues starting with this prefix,
                               defaults to the configured prefix

        Returns:
            This wrapper

        Raises:
            ClientError: If listing queues fails
        """
        if queue_name_prefix is None:
            queue_name_prefix = self.config.get('queue_name_prefix', settings.queue_name_prefix)

        try:
            await self._connect()
            await self._list_queues(queue_name_prefix)
        except (ClientError, BotoCoreError) as e:
            self.error(e, self._public_config())
            await self._disconnect()
            raise

        self.log(f"Connected on SQS:{self.name}", self._public_config())
        return self

    async def _disconnect(self) -> bool:
        if self._exit_stack is None:
            return False

        exit_stack, self._exit_stack = self._exit_stack, None
        self.client = None
        await exit_stack.aclose()
        return True

    async def close(self) -> None:
        """Close the SQS client. The queue registry is kept."""
        if await self._disconnect():
            self.log(f"Disconnected from SQS:{self.name}")

    def build_queue_url(self, name: str) -> str:
        """
        Construct the URL of a queue from region, account id and name.

        Raises:
            SQSServiceError: If no account id is configured
        """
        account_id = self.config.get('account_id')
        if not account_id:
            raise SQSServiceError("account_id is required to build queue URLs")

        endpoint = (
            self.config.get('endpoint')
            or self.config.get('endpoint_url')
            or f"https://sqs.{self.config.get('region', settings.aws_region)}.amazonaws.com"
        )
        return f"{endpoint.rstrip('/')}/{account_id}/{name}"

    def get_queue_url(self, name: str) -> str:
        """
        Resolve a queue name to its URL.

        Registered queues win; otherwise the URL is constructed when an
        account id is configured.

        Raises:
            QueueDoesNotExistError: If the queue cannot be resolved
        """
        queue_url = self.queues.get(name)
        if queue_url:
            return queue_url

        if self.config.get('account_id'):
            return self.build_queue_url(name)

        error = QueueDoesNotExistError(name)
        self.error(error, {'queue_name': name})
        raise error

    @staticmethod
    def _stringify_attributes(attributes: Dict[str, Any]) -> Dict[str, str]:
        stringified = {}
        for key, value in attributes.items():
            if isinstance(value, bool):
                stringified[key] = 'true' if value else 'false'
            elif isinstance(value, (dict, list)):
                stringified[key] = json.dumps(value)
            else:
                stringified[key] = str(value)
        return stringified

    async def create_queue(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> str:
        """
        Create a queue unless it is already registered.

        Args:
            name: Queue name (FIFO queues must end with ".fifo")
            attributes: Queue attributes, e.g. DelaySeconds,
                        MaximumMessageSize, MessageRetentionPeriod,
                        ReceiveMessageWaitTimeSeconds, FifoQueue

        Returns:
            URL of the queue

        Raises:
            ClientError: If CreateQueue fails
        """
        if name in self.queues:
            queue_url = self.queues[name]
            self.log(f"Queue {name} exists => {queue_url}", {'name': name, 'queue_url': queue_url})
            return queue_url

        options = self._stringify_attributes(attributes or {})
        client = self._require_client()

        try:
            response = await client.create_queue(QueueName=name, Attributes=options)
        except (ClientError, BotoCoreError) as e:
            self.error(e, {'name': name, 'options': options})
            raise

        queue_url = response['QueueUrl']
        self.queues[name] = queue_url
        self.log(f"Created queue {name} => {queue_url}", {'name': name, 'queue_url': queue_url})
        return queue_url

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    @staticmethod
    def _delay_seconds(delay: Optional[Union[int, float]]) -> Optional[int]:
        """DelaySeconds for a send, truncated to whole seconds."""
        if delay is None:
            return None
        if isinstance(delay, bool) or not isinstance(delay, (int, float)):
            raise ValueError("delay must be a number of seconds")
        return int(delay)

    def _publish_target(self, name: str, handle: bool) -> Optional[str]:
        try:
            return self.get_queue_url(name)
        except QueueDoesNotExistError:
            if handle is False:
                raise
            return None

    async def _forward(
        self,
        operation: str,
        params: Dict[str, Any],
        context: Dict[str, Any],
        handle: bool
    ) -> Optional[Dict[str, Any]]:
        client = self._require_client()
        try:
            return await getattr(client, operation)(**params)
        except (ClientError, BotoCoreError) as e:
            self.error(e, context)
            if handle is False:
                raise
            return None

    async def publish(
        self,
        name: str,
        content: Any,
        meta: Optional[Dict[str, Any]] = None,
        handle: bool = True,
        delay: Optional[Union[int, float]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Publish one message.

        Args:
            name: Queue name
            content: Message content, any JSON value
            meta: Message metadata, defaults to {}
            handle: Swallow errors after reporting them when True
            delay: DelaySeconds for this message, truncated to whole seconds

        Returns:
            SendMessage response, or None when an error was handled
        """
        delay_seconds = self._delay_seconds(delay)
        queue_url = self._publish_target(name, handle)
        if queue_url is None:
            return None

        params = {
            'QueueUrl': queue_url,
            'MessageBody': MessageEnvelope(content=content, meta=meta).to_body(),
        }
        if delay_seconds is not None:
            params['DelaySeconds'] = delay_seconds

        return await self._forward(
            'send_message',
            params,
            {'queue_name': name, 'content': content, 'meta': meta or {}, 'handle': handle},
            handle
        )

    async def publish_batch(
        self,
        name: str,
        content_list: List[Any],
        meta: Optional[Dict[str, Any]] = None,
        handle: bool = True,
        delay: Optional[Union[int, float]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Publish several messages sharing the same meta.

        Entries get a random Id and are sent in requests of at most 10.

        Args:
            name: Queue name
            content_list: One content value per message
            meta: Metadata attached to every message
            handle: Swallow errors after reporting them when True
            delay: DelaySeconds for every message, truncated to whole seconds

        Returns:
            Merged SendMessageBatch response with Successful and Failed
            entries, or None when an error was handled
        """
        if not isinstance(content_list, list):
            raise ValueError("content_list must be a list")
        delay_seconds = self._delay_seconds(delay)

        queue_url = self._publish_target(name, handle)
        if queue_url is None:
            return None

        entries = []
        for content in content_list:
            entry = {
                'Id': str(uuid4()),
                'MessageBody': MessageEnvelope(content=content, meta=meta).to_body(),
            }
            if delay_seconds is not None:
                entry['DelaySeconds'] = delay_seconds
            entries.append(entry)

        if not entries:
            return {'Successful': [], 'Failed': []}

        context = {'queue_name': name, 'content_list': content_list, 'meta': meta or {}, 'handle': handle}
        results = []
        for chunk in chunk_list(entries, SQS_MAX_BATCH_ENTRIES):
            response = await self._forward(
                'send_message_batch',
                {'QueueUrl': queue_url, 'Entries': chunk},
                context,
                handle
            )
            if response is None:
                return None
            results.append(response)

        merged = merge_batch_results(results)
        merged.setdefault('Successful', [])
        merged.setdefault('Failed', [])

        if merged['Failed']:
            logger.warning(
                "Some batch entries were not sent",
                service=self.name,
                queue_name=name,
                failed=len(merged['Failed'])
            )

        return merged

    async def publish_fifo(
        self,
        name: str,
        content: Any,
        meta: Optional[Dict[str, Any]] = None,
        group: Union[FifoGroup, Dict[str, Any], None] = None,
        handle: bool = True
    ) -> Optional[Dict[str, Any]]:
        """
        Publish one message to a FIFO queue.

        Args:
            name: Queue name
            content: Message content, any JSON value
            meta: Message metadata, defaults to {}
            group: FifoGroup or {"name": group_id, "id": deduplication_id}
            handle: Swallow errors after reporting them when True

        Returns:
            SendMessage response, or None when an error was handled

        Raises:
            ValueError: If group has no name
        """
        group = FifoGroup.coerce(group)

        queue_url = self._publish_target(name, handle)
        if queue_url is None:
            return None

        params = {
            'QueueUrl': queue_url,
            'MessageBody': MessageEnvelope(content=content, meta=meta).to_body(),
            'MessageGroupId': group.name,
        }
        if group.id:
            params['MessageDeduplicationId'] = group.id

        return await self._forward(
            'send_message',
            params,
            {'queue_name': name, 'content': content, 'meta': meta or {}, 'handle': handle},
            handle
        )

    # ------------------------------------------------------------------
    # Consuming
    # ------------------------------------------------------------------

    async def subscribe(
        self,
        name: str,
        callback: Callback,
        max_in_progress: int = 10,
        **consumer_options: Any
    ) -> Consumer:
        """
        Subscribe to a queue using long polling.

        callback(message, info) is called for every message; it may be a
        coroutine function. The message is deleted once message.ack() is
        called and left for redelivery when message.nack(err) is called
        or the callback raises.

        Args:
            name: Queue name
            callback: Message callback
            max_in_progress: Messages received and processed per poll;
                             a batch_size consumer option takes precedence
            **consumer_options: Extra Consumer options (wait_time_seconds,
                                handle_message_timeout, ...)

        Returns:
            The started Consumer; stop it with consumer.stop()

        Raises:
            QueueDoesNotExistError: If the queue cannot be resolved
        """
        queue_url = self.get_queue_url(name)
        client = self._require_client()

        async def handle_message(raw: Dict[str, Any]) -> None:
            settled = asyncio.get_running_loop().create_future()

            def ack() -> None:
                if not settled.done():
                    settled.set_result(None)

            def nack(err: Optional[BaseException] = None) -> None:
                if settled.done():
                    return
                if err is None:
                    err = Exception("Unable to process message")
                elif not isinstance(err, BaseException):
                    err = Exception(str(err))
                settled.set_exception(err)

            message = ReceivedMessage(raw.get('Body'), MessageInfo.from_sqs(raw), ack, nack)
            try:
                result = callback(message, message.info)
                if inspect.isawaitable(result):
                    await result
            except BaseException:
                # The callback error wins over an earlier nack
                if settled.done() and not settled.cancelled():
                    settled.exception()
                else:
                    settled.cancel()
                raise
            await settled

        consumer_options.setdefault('batch_size', max_in_progress or 10)
        consumer = Consumer(
            queue_url=queue_url,
            handle_message=handle_message,
            sqs=client,
            **consumer_options
        )

        def report(err: BaseException, raw: Optional[Dict[str, Any]] = None) -> None:
            data = {'queue_name': name}
            if raw:
                data['message_id'] = raw.get('MessageId')
            self.error(err, data)

        consumer.on("error", report)
        consumer.on("processing_error", report)
        consumer.on("timeout_error", report)

        self.success(f"Subscribed to {queue_url}")
        consumer.start()
        return consumer

    def _to_received(self, name: str, raw: Dict[str, Any]) -> Tuple[ReceivedMessage, MessageInfo]:
        info = MessageInfo.from_sqs(raw)
        message = ReceivedMessage(
            raw.get('Body'),
            info,
            lambda: self.delete_message(name, info.id, info.handle),
            lambda err=None: self.return_message(name, info.id, info.handle)
        )
        return message, info

    async def fetch_messages(
        self,
        name: str,
        number: int = 10,
        wait_time_seconds: Optional[int] = None
    ) -> List[Tuple[ReceivedMessage, MessageInfo]]:
        """
        Receive up to number messages without subscribing.

        Args:
            name: Queue name
            number: MaxNumberOfMessages, 1 to 10
            wait_time_seconds: Optional long polling wait time

        Returns:
            List of (message, info) pairs; message.ack() deletes the
            message and message.nack() returns it to the queue
        """
        queue_url = self.get_queue_url(name)
        client = self._require_client()

        params: Dict[str, Any] = {
            'QueueUrl': queue_url,
            'MaxNumberOfMessages': number,
            'AttributeNames': ['All'],
            'MessageAttributeNames': ['All'],
        }
        if wait_time_seconds is not None:
            params['WaitTimeSeconds'] = wait_time_seconds

        try:
            response = await client.receive_message(**params)
        except (ClientError, BotoCoreError) as e:
            self.error(e, {'queue_name': name, 'number': number})
            raise

        return [self._to_received(name, raw) for raw in response.get('Messages', [])]

    async def fetch_one(self, name: str) -> Optional[Tuple[ReceivedMessage, MessageInfo]]:
        """Receive a single message, or None when the queue is empty."""
        messages = await self.fetch_messages(name, 1)
        return messages[0] if messages else None

    async def delete_message(self, name: str, message_id: Optional[str], handle: str) -> None:
        """
        Delete a received message.

        Args:
            name: Queue name
            message_id: MessageId, used for reporting only
            handle: ReceiptHandle of the message
        """
        queue_url = self.get_queue_url(name)
        client = self._require_client()

        try:
            await client.delete_message(QueueUrl=queue_url, ReceiptHandle=handle)
        except (ClientError, BotoCoreError) as e:
            self.error(e, {'queue_name': name, 'message_id': message_id})
            raise

        logger.debug("Deleted message from SQS", queue_name=name, message_id=message_id)

    async def return_message(self, name: str, message_id: Optional[str], handle: str) -> None:
        """
        Make a received message visible again immediately.

        Args:
            name: Queue name
            message_id: MessageId, used for reporting only
            handle: ReceiptHandle of the message
        """
        queue_url = self.get_queue_url(name)
        client = self._require_client()

        try:
            await client.change_message_visibility(
                QueueUrl=queue_url,
                ReceiptHandle=handle,
                VisibilityTimeout=0
            )
        except (ClientError, BotoCoreError) as e:
            self.error(e, {'queue_name': name, 'message_id': message_id})
            raise

        logger.debug("Returned message to SQS", queue_name=name, message_id=message_id)
