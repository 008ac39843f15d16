"""
Module: utils
Description: Package initialization for utility functions.

This package contains shared helpers used throughout the SQS wrapper.

Current utilities:
- logger: Structured logging configuration and helpers
- json_helpers: Message envelope framing and safe body parsing
- batch_helpers: Chunking and merging of batch requests
"""

__all__ = []
