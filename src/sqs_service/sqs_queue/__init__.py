"""
Package: sqs_queue
Description: SQS queue operations.

Provides the async SQS wrapper (queue registry, publishing, fetching,
acknowledgement) and the long-polling Consumer used by subscribe().
"""
