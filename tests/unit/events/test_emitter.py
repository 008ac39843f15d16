"""
Module: test_emitter.py
Description: Unit tests for the event emitter and its logging bridge.
"""

import pytest
from unittest.mock import MagicMock
from botocore.exceptions import ClientError

from sqs_service.events.emitter import (
    EventEmitter,
    ServiceEvent,
    attach_logging,
    create_logging_emitter,
)


class TestEventEmitter:
    """Test cases for EventEmitter."""

    def test_emit_calls_listeners_in_order(self):
        """Test listeners run in registration order with emitted args."""
        emitter = EventEmitter()
        calls = []
        emitter.on("log", lambda payload: calls.append(("first", payload)))
        emitter.on("log", lambda payload: calls.append(("second", payload)))

        assert emitter.emit("log", "hello") is True
        assert calls == [("first", "hello"), ("second", "hello")]

    def test_emit_without_listeners(self):
        """Test emit reports when nobody listened."""
        assert EventEmitter().emit("error", "ignored") is False

    def test_once(self):
        """Test once listeners run a single time."""
        emitter = EventEmitter()
        calls = []
        emitter.once("success", calls.append)

        emitter.emit("success", 1)
        emitter.emit("success", 2)

        assert calls == [1]
        assert emitter.listener_count("success") == 0

    def test_off(self):
        """Test removed listeners are not called."""
        emitter = EventEmitter()
        calls = []
        listener = emitter.on("log", calls.append)

        emitter.off("log", listener)
        emitter.off("log", listener)
        emitter.emit("log", 1)

        assert calls == []

    def test_on_requires_callable(self):
        """Test non-callable listeners are rejected."""
        with pytest.raises(ValueError, match="listener must be callable"):
            EventEmitter().on("log", "nope")

    def test_on_as_decorator(self):
        """Test on() returns the listener."""
        emitter = EventEmitter()

        def listener(payload):
            pass

        assert emitter.on("log", listener) is listener
        assert emitter.listener_count("log") == 1


class TestLoggingBridge:
    """Test cases for routing events into structlog."""

    def test_attach_logging_levels(self):
        """Test log/success go to info and error to error."""
        log = MagicMock()
        emitter = attach_logging(EventEmitter(), log)

        emitter.emit("log", ServiceEvent(service="sqs", message="Connected", data={'a': 1}))
        emitter.emit("success", ServiceEvent(service="sqs", message="Subscribed"))
        emitter.emit("error", ServiceEvent(service="sqs", message="boom", err=RuntimeError("boom")))

        log.info.assert_any_call("Connected", service="sqs", data={'a': 1})
        log.info.assert_any_call("Subscribed", service="sqs", data=None, success=True)
        log.error.assert_called_once_with(
            "boom",
            service="sqs",
            data=None,
            error="boom",
            error_type="RuntimeError"
        )

    def test_client_error_fields(self):
        """Test botocore errors log their code and message."""
        log = MagicMock()
        emitter = attach_logging(EventEmitter(), log)
        err = ClientError({'Error': {'Code': 'AccessDenied', 'Message': 'denied'}}, 'SendMessage')

        emitter.emit("error", ServiceEvent(service="sqs", message=str(err), err=err))

        kwargs = log.error.call_args.kwargs
        assert kwargs['error_code'] == 'AccessDenied'
        assert kwargs['error_message'] == 'denied'

    def test_create_logging_emitter(self):
        """Test the default emitter listens on every wrapper channel."""
        emitter = create_logging_emitter()

        for name in ("log", "success", "error"):
            assert emitter.listener_count(name) == 1

        assert emitter.emit("log", ServiceEvent(service="sqs", message="hello")) is True
