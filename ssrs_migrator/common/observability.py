"""
Operation event tracking for report server calls.

Every SOAP call and every batch item produces an OperationEvent that is handed
to an EventSink. The sink is passed explicitly to each component, so tests can
collect events in memory without configuring logging.

Provides:
- OperationEvent: structured event {operation, target, outcome, error_message}
- LoggingSink / MemorySink / NullSink implementations
- track_operation() decorator for wrapping client methods
- sanitize_error() to strip credentials from error text
- configure_logging() for CLI usage
"""

import re
import sys
import time
import logging
import functools
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

EVENT_LOGGER_NAME = "ssrs_migrator.events"
FAILED_REPORT_LOGGER_NAME = "ssrs_migrator.failed_reports"

OUTCOME_SUCCESS = "success"
OUTCOME_FAILURE = "failure"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class OperationEvent:
    """
    Structured record of one remote call or batch item.

    Attributes:
        operation: SOAP operation or batch step (e.g., "ListChildren", "upload")
        target: Endpoint, catalog path or item name the operation acted on
        outcome: "success" or "failure"
        error_message: Sanitized error text for failures
        status_code: HTTP status code, when a response was received
        elapsed_ms: Wall-clock duration of the call
    """
    operation: str
    target: str
    outcome: str
    error_message: Optional[str] = None
    status_code: Optional[int] = None
    elapsed_ms: Optional[float] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == OUTCOME_SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class EventSink(ABC):
    """Destination for operation events."""

    @abstractmethod
    def emit(self, event: OperationEvent) -> None:
        """Record one event. Must never raise into the caller."""
        pass


class LoggingSink(EventSink):
    """Writes events through the standard logging module."""

    def __init__(self, logger_name: str = EVENT_LOGGER_NAME):
        self.logger = logging.getLogger(logger_name)

    def emit(self, event: OperationEvent) -> None:
        if event.succeeded:
            self.logger.info(
                f"{event.operation} {event.target} -> {event.outcome}",
                extra={"event": event.to_dict()}
            )
        else:
            self.logger.error(
                f"{event.operation} {event.target} -> {event.outcome}: {event.error_message}",
                extra={"event": event.to_dict()}
            )


class MemorySink(EventSink):
    """Keeps events in a list. Used by tests and by callers that report afterwards."""

    def __init__(self):
        self.events: List[OperationEvent] = []

    def emit(self, event: OperationEvent) -> None:
        self.events.append(event)

    @property
    def failures(self) -> List[OperationEvent]:
        return [e for e in self.events if not e.succeeded]

    def clear(self) -> None:
        self.events.clear()


class NullSink(EventSink):
    """Discards all events."""

    def emit(self, event: OperationEvent) -> None:
        pass


def sanitize_error(msg: Any, secrets: Iterable[str] = ()) -> Optional[str]:
    """
    Strip credentials from error messages before they reach a sink.

    Args:
        msg: Error message or exception
        secrets: Literal values (e.g., a password) to mask wherever they appear

    Returns:
        Sanitized message truncated to 500 characters, or None for empty input
    """
    if not msg:
        return None
    s = str(msg)
    for secret in secrets:
        if secret:
            s = s.replace(secret, '***')
    s = re.sub(r'Basic [A-Za-z0-9+/]+=*', 'Basic ***', s)
    s = re.sub(r'Bearer [A-Za-z0-9\-._~+/]+=*', 'Bearer ***', s)
    s = re.sub(r'(https?)://[^/@\s]+@', r'\1://***@', s)
    return s[:500]


def emit_event(sink: Optional[EventSink], event: OperationEvent) -> None:
    """Hand an event to a sink. Sink failures are logged, never propagated."""
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception as e:
        logger.warning(f"Event sink {type(sink).__name__} failed: {e}")


def track_operation(operation_extractor=None):
    """
    Decorator for tracking remote calls on client methods.

    The wrapped method's instance must expose `sink` (an EventSink), `endpoint`
    and optionally `secrets` (values to mask in error text).

    Args:
        operation_extractor: Optional callable(args, kwargs) -> str
            to extract the operation name from method arguments.

    Usage:
        class MyClient:
            @track_operation()
            def call(self, operation, fields):
                ...
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            if operation_extractor:
                operation = operation_extractor(args, kwargs)
            else:
                operation = _default_operation_extractor(func, args, kwargs)

            start = time.monotonic()
            success = True
            error_msg = None
            status_code = None

            try:
                return func(self, *args, **kwargs)

            except Exception as e:
                success = False
                error_msg = sanitize_error(e, getattr(self, 'secrets', ()))
                status_code = getattr(e, 'status_code', None)
                raise

            finally:
                emit_event(getattr(self, 'sink', None), OperationEvent(
                    operation=operation,
                    target=getattr(self, 'endpoint', 'unknown'),
                    outcome=OUTCOME_SUCCESS if success else OUTCOME_FAILURE,
                    error_message=error_msg,
                    status_code=status_code,
                    elapsed_ms=round((time.monotonic() - start) * 1000, 2),
                ))

        return wrapper
    return decorator


def _default_operation_extractor(func, args, kwargs):
    """Best-effort extraction of the operation name from method arguments."""
    for key in ('operation', 'action'):
        if key in kwargs:
            return str(kwargs[key])
    if args and isinstance(args[0], str):
        return args[0]
    return func.__name__


def configure_logging(level: str = "INFO") -> None:
    """
    Configure root logging for command line usage.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    # requests/urllib3 debug output includes auth headers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
