"""
Module: errors.py
Description: Exceptions raised by the SQS wrapper itself.

Errors returned by SQS are not wrapped; botocore's ClientError and
BotoCoreError propagate unchanged.
"""


class SQSServiceError(Exception):
    """Base class for errors raised by the wrapper."""


class QueueDoesNotExistError(SQSServiceError):
    """Raised when a queue name is neither registered nor resolvable."""

    def __init__(self, queue_name: str):
        super().__init__(f"Queue {queue_name} does not exists")
        self.queue_name = queue_name
