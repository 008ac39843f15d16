"""
Package: events
Description: Event emitter logging facade for the SQS wrapper.
"""

from .emitter import EventEmitter, ServiceEvent, attach_logging, create_logging_emitter

__all__ = [
    "EventEmitter",
    "ServiceEvent",
    "attach_logging",
    "create_logging_emitter",
]
