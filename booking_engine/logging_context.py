"""Request ID logging context for tracing one booking request across modules.

Every record logged while a request is being handled carries its
``request_id``, so the availability check, pricing, store write and event
emission of a single create or transition can be grepped together.

Usage:
    from booking_engine.logging_context import get_request_logger, request_scope

    logger = get_request_logger(__name__)
    with request_scope():
        logger.info("Creating booking")  # record.request_id == "REQ-3F2A..."
"""

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

NO_REQUEST_ID = "-"

_request_id: ContextVar[str] = ContextVar("request_id", default=NO_REQUEST_ID)


def new_request_id() -> str:
    return f"REQ-{uuid.uuid4().hex[:12].upper()}"


def set_request_id(request_id: str) -> None:
    """Set the correlation ID for the current context."""
    _request_id.set(request_id)


def get_request_id() -> str:
    """Retrieve the current correlation ID."""
    return _request_id.get()


@contextmanager
def request_scope(request_id: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation ID for the duration of the block.

    An ID already bound by the caller (a CLI command, an HTTP middleware)
    is kept, so nested operations log under the outer request. The
    previous value is restored on exit.
    """
    current = _request_id.get()
    if request_id is None and current != NO_REQUEST_ID:
        yield current
        return
    token = _request_id.set(request_id or new_request_id())
    try:
        yield _request_id.get()
    finally:
        _request_id.reset(token)


class RequestIdFilter(logging.Filter):
    """Injects request_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()  # type: ignore[attr-defined]
        return True


def get_request_logger(name: str) -> logging.Logger:
    """Return a logger with the RequestIdFilter attached."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, RequestIdFilter) for f in logger.filters):
        logger.addFilter(RequestIdFilter())
    return logger
