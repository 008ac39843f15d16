"""
Module: emitter.py
Description: Event emitter used as the logging facade of the wrapper.

The wrapper never writes logs directly for queue operations; it emits
"log", "success" and "error" events carrying a ServiceEvent payload and
lets the application decide where they go. create_logging_emitter()
returns an emitter already wired into structlog, which is what the
wrapper uses when no emitter is supplied.

Key Components:
- EventEmitter: Named listeners, synchronous dispatch
- ServiceEvent: Payload of the wrapper's log/success/error events
- attach_logging(): Route wrapper events into a structlog logger

Dependencies: pydantic, botocore, structlog
"""

from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import ClientError
from pydantic import BaseModel, ConfigDict, Field

from ..utils.logger import get_logger

logger = get_logger(__name__)

Listener = Callable[..., Any]


class ServiceEvent(BaseModel):
    """
    Payload emitted by the wrapper on its event channels.

    Attributes:
        service: Name given to the SQS wrapper instance
        message: Human readable message (log/success events)
        data: Contextual data for the event
        err: Exception that triggered an error event
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    service: str = Field(..., description="Wrapper instance name")
    message: Optional[str] = Field(default=None, description="Event message")
    data: Optional[Dict[str, Any]] = Field(default=None, description="Event context")
    err: Optional[BaseException] = Field(default=None, description="Error, if any")


class EventEmitter:
    """
    Minimal event emitter with named channels.

    Listeners are called synchronously, in registration order, with the
    arguments passed to emit(). A listener registered with once() is
    removed before it runs.

    Example:
        >>> emitter = EventEmitter()
        >>> emitter.on("log", print)
        >>> emitter.emit("log", "hello")
        hello
        True
    """

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}
        self._once: Dict[str, List[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Listener:
        """
        Register a listener for an event.

        Returns the listener so on() can be used as a decorator.
        """
        if not callable(listener):
            raise ValueError("listener must be callable")
        self._listeners.setdefault(event, []).append(listener)
        return listener

    def once(self, event: str, listener: Listener) -> Listener:
        """Register a listener that runs at most once."""
        self.on(event, listener)
        self._once.setdefault(event, []).append(listener)
        return listener

    def off(self, event: str, listener: Listener) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)
        once = self._once.get(event, [])
        if listener in once:
            once.remove(listener)

    def listener_count(self, event: str) -> int:
        """Number of listeners registered for an event."""
        return len(self._listeners.get(event, []))

    def emit(self, event: str, *args: Any) -> bool:
        """
        Call every listener registered for an event.

        Args:
            event: Event name
            *args: Arguments passed to each listener

        Returns:
            True if at least one listener was called
        """
        listeners = list(self._listeners.get(event, []))
        if not listeners:
            return False

        for listener in listeners:
            if listener in self._once.get(event, []):
                self.off(event, listener)
            listener(*args)

        return True


def _error_fields(err: Optional[BaseException]) -> Dict[str, Any]:
    """Structured log fields describing an error."""
    if err is None:
        return {}
    if isinstance(err, ClientError):
        return {
            "error_code": err.response.get('Error', {}).get('Code'),
            "error_message": err.response.get('Error', {}).get('Message'),
        }
    return {"error": str(err), "error_type": type(err).__name__}


def attach_logging(emitter: EventEmitter, log=None) -> EventEmitter:
    """
    Route wrapper events into a structlog logger.

    "log" and "success" events are logged at info level, "error" events
    at error level with the error code and message of botocore errors.

    Args:
        emitter: Emitter to attach listeners to
        log: structlog logger, defaults to this module's logger

    Returns:
        The same emitter
    """
    log = log or logger

    def on_log(event: ServiceEvent) -> None:
        log.info(event.message, service=event.service, data=event.data)

    def on_success(event: ServiceEvent) -> None:
        log.info(event.message, service=event.service, data=event.data, success=True)

    def on_error(event: ServiceEvent) -> None:
        log.error(
            event.message or "SQS operation failed",
            service=event.service,
            data=event.data,
            **_error_fields(event.err)
        )

    emitter.on("log", on_log)
    emitter.on("success", on_success)
    emitter.on("error", on_error)
    return emitter


def create_logging_emitter() -> EventEmitter:
    """Create an emitter with structlog listeners attached."""
    return attach_logging(EventEmitter())
