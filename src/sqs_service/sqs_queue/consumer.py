"""
Module: consumer.py
Description: Long-polling SQS consumer.

Repeatedly receives batches from a queue and hands every message to a
handler. A message whose handler completes is deleted; a message whose
handler fails or times out is left for SQS to redeliver once its
visibility timeout expires (or immediately with
terminate_visibility_timeout). Receive errors are reported and retried
with exponential backoff for as long as the consumer runs.

Events (subscribe with consumer.on(name, listener)):
- message_received(raw)            before the handler runs
- message_processed(raw)           after the message was deleted
- processing_error(err, raw)       the handler raised or nacked
- timeout_error(err, raw)          the handler exceeded its timeout
- error(err, raw_or_None)          receive/delete/visibility failures
- empty()                          a poll returned no messages
- stopped()                        the polling loop exited

Dependencies: asyncio, tenacity, botocore, structlog
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from botocore.exceptions import BotoCoreError, ClientError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    wait_exponential,
)

from ..config.settings import settings
from ..events.emitter import EventEmitter
from ..utils.logger import get_logger

logger = get_logger(__name__)

RawMessage = Dict[str, Any]
MessageHandler = Callable[[RawMessage], Union[None, Awaitable[Any]]]


class Consumer:
    """
    Polls an SQS queue and dispatches messages to a handler.

    Attributes:
        queue_url: URL of the polled queue
        batch_size: MaxNumberOfMessages per receive (1-10)
        wait_time_seconds: Long polling wait time
        events: EventEmitter carrying the consumer events

    Example:
        >>> consumer = Consumer(queue_url=url, handle_message=handle, sqs=client)
        >>> consumer.on("processing_error", lambda err, raw: print(err))
        >>> consumer.start()
        >>> ...
        >>> await consumer.close()
    """

    def __init__(
        self,
        queue_url: str,
        handle_message: MessageHandler,
        sqs: Any,
        batch_size: int = settings.consumer_batch_size,
        wait_time_seconds: int = settings.consumer_wait_time_seconds,
        visibility_timeout: Optional[int] = settings.consumer_visibility_timeout,
        attribute_names: Optional[List[str]] = None,
        message_attribute_names: Optional[List[str]] = None,
        handle_message_timeout: Optional[float] = None,
        terminate_visibility_timeout: bool = False,
        polling_wait_time: float = 0,
        error_backoff_max: float = settings.consumer_error_backoff_max
    ):
        """
        Initialize the consumer. Polling starts with start().

        Args:
            queue_url: URL of the queue to poll
            handle_message: Callable receiving the raw SQS message dict;
                            may be a coroutine function
            sqs: aioboto3 SQS client
            batch_size: Messages per receive, 1 to 10
            wait_time_seconds: Long polling wait time, 0 to 20
            visibility_timeout: Visibility timeout for received messages
            attribute_names: System attributes to fetch
            message_attribute_names: Message attributes to fetch
            handle_message_timeout: Seconds before a handler is abandoned
            terminate_visibility_timeout: Return failed messages immediately
            polling_wait_time: Pause in seconds between polls
            error_backoff_max: Cap in seconds for backoff after receive errors

        Raises:
            ValueError: If parameters are invalid
        """
        if not queue_url or not isinstance(queue_url, str):
            raise ValueError("queue_url must be a non-empty string")
        if not callable(handle_message):
            raise ValueError("handle_message must be callable")
        if sqs is None:
            raise ValueError("sqs client is required")
        if not 1 <= batch_size <= 10:
            raise ValueError("batch_size must be between 1 and 10")
        if not 0 <= wait_time_seconds <= 20:
            raise ValueError("wait_time_seconds must be between 0 and 20")

        self.queue_url = queue_url
        self.handle_message = handle_message
        self.sqs = sqs
        self.batch_size = batch_size
        self.wait_time_seconds = wait_time_seconds
        self.visibility_timeout = visibility_timeout
        self.attribute_names = attribute_names or ["All"]
        self.message_attribute_names = message_attribute_names or ["All"]
        self.handle_message_timeout = handle_message_timeout
        self.terminate_visibility_timeout = terminate_visibility_timeout
        self.polling_wait_time = polling_wait_time
        self.error_backoff_max = error_backoff_max

        self.events = EventEmitter()
        self._stopped = True
        self._task: Optional[asyncio.Task] = None
        self._poll: Optional[asyncio.Future] = None

    def on(self, event: str, listener: Callable[..., Any]) -> Callable[..., Any]:
        """Register a listener for a consumer event."""
        return self.events.on(event, listener)

    @property
    def is_running(self) -> bool:
        """True while the polling loop is active."""
        return not self._stopped

    def start(self) -> None:
        """Start polling. Must be called from a running event loop."""
        if not self._stopped:
            return

        self._stopped = False
        self._task = asyncio.ensure_future(self._run())

        logger.info(
            "Consumer started",
            queue_url=self.queue_url,
            batch_size=self.batch_size
        )

    def stop(self) -> None:
        """
        Stop polling.

        An in-flight receive is cancelled; messages already handed to the
        handler finish processing before the loop exits.
        """
        if self._stopped:
            return

        self._stopped = True
        if self._poll is not None and not self._poll.done():
            self._poll.cancel()

        logger.info("Consumer stopping", queue_url=self.queue_url)

    async def close(self) -> None:
        """Stop polling and wait for the loop to exit."""
        self.stop()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    def _emit(self, event: str, *args: Any) -> None:
        """Emit a consumer event; a failing listener is logged, polling goes on."""
        try:
            self.events.emit(event, *args)
        except Exception:
            logger.exception(
                "Consumer event listener failed",
                queue_url=self.queue_url,
                event=event
            )

    async def _run(self) -> None:
        try:
            while not self._stopped:
                self._poll = asyncio.ensure_future(self._receive_with_backoff())
                try:
                    messages = await self._poll
                except asyncio.CancelledError:
                    if self._stopped:
                        break
                    raise
                finally:
                    self._poll = None

                if not messages:
                    self._emit("empty")
                else:
                    await asyncio.gather(*(self._process_message(raw) for raw in messages))

                if self.polling_wait_time and not self._stopped:
                    await asyncio.sleep(self.polling_wait_time)
        finally:
            self._stopped = True
            logger.info("Consumer stopped", queue_url=self.queue_url)
            self._emit("stopped")

    def _on_receive_error(self, retry_state: RetryCallState) -> None:
        err = retry_state.outcome.exception()
        logger.warning(
            "Failed to receive messages from SQS, backing off",
            queue_url=self.queue_url,
            attempt=retry_state.attempt_number,
            error=str(err),
            error_type=type(err).__name__
        )
        self._emit("error", err, None)

    async def _receive_with_backoff(self) -> List[RawMessage]:
        retrying = AsyncRetrying(
            wait=wait_exponential(
                multiplier=1,
                min=min(1, self.error_backoff_max),
                max=self.error_backoff_max
            ),
            retry=retry_if_exception_type(Exception),
            before_sleep=self._on_receive_error,
            reraise=True
        )
        return await retrying(self._receive)

    async def _receive(self) -> List[RawMessage]:
        params = {
            'QueueUrl': self.queue_url,
            'MaxNumberOfMessages': self.batch_size,
            'WaitTimeSeconds': self.wait_time_seconds,
            'AttributeNames': self.attribute_names,
            'MessageAttributeNames': self.message_attribute_names,
        }
        if self.visibility_timeout is not None:
            params['VisibilityTimeout'] = self.visibility_timeout

        response = await self.sqs.receive_message(**params)
        messages = response.get('Messages', [])

        if messages:
            logger.debug(
                "Received messages from SQS",
                queue_url=self.queue_url,
                count=len(messages)
            )

        return messages

    async def _execute_handler(self, raw: RawMessage) -> None:
        result = self.handle_message(raw)
        if not inspect.isawaitable(result):
            return

        if self.handle_message_timeout:
            await asyncio.wait_for(result, timeout=self.handle_message_timeout)
        else:
            await result

    async def _process_message(self, raw: RawMessage) -> None:
        message_id = raw.get('MessageId')
        self._emit("message_received", raw)

        try:
            await self._execute_handler(raw)

        except asyncio.TimeoutError as e:
            logger.warning(
                "Message handler timed out",
                queue_url=self.queue_url,
                message_id=message_id,
                timeout_seconds=self.handle_message_timeout
            )
            self._emit("timeout_error", e, raw)
            await self._release(raw)
            return

        except Exception as e:
            logger.warning(
                "Message handler failed",
                queue_url=self.queue_url,
                message_id=message_id,
                error=str(e),
                error_type=type(e).__name__
            )
            self._emit("processing_error", e, raw)
            await self._release(raw)
            return

        try:
            await self.sqs.delete_message(
                QueueUrl=self.queue_url,
                ReceiptHandle=raw['ReceiptHandle']
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Failed to delete processed message",
                queue_url=self.queue_url,
                message_id=message_id,
                error=str(e)
            )
            self._emit("error", e, raw)
            return

        self._emit("message_processed", raw)

    async def _release(self, raw: RawMessage) -> None:
        """Make a failed message visible again when configured to."""
        if not self.terminate_visibility_timeout:
            return

        try:
            await self.sqs.change_message_visibility(
                QueueUrl=self.queue_url,
                ReceiptHandle=raw['ReceiptHandle'],
                VisibilityTimeout=0
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Failed to reset message visibility",
                queue_url=self.queue_url,
                message_id=raw.get('MessageId'),
                error=str(e)
            )
            self._emit("error", e, raw)
