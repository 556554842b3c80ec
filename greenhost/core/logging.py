"""
Structured logging configuration for the GreenHost relay client.

Every relay call logs under its request id, and credentials that pass through
provisioning calls are masked before any renderer sees them.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler

# Correlation ID for one CLI invocation; request ids are per relay call
_correlation_id: Optional[str] = None

SECRET_LOG_KEYS = frozenset({"password", "admin_password", "api_key", "encryption_key"})
MASK = "********"


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set a correlation ID for the current execution context."""
    global _correlation_id
    _correlation_id = correlation_id or str(uuid.uuid4())[:8]
    return _correlation_id


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID."""
    return _correlation_id


def add_correlation_id(logger, method_name, event_dict):
    """Add correlation ID to log entries."""
    if _correlation_id:
        event_dict["correlation_id"] = _correlation_id
    return event_dict


def mask_secrets(logger, method_name, event_dict):
    """Replace credential values, including inside a logged ``payload`` dict."""
    for key in SECRET_LOG_KEYS.intersection(event_dict):
        event_dict[key] = MASK
    payload = event_dict.get("payload")
    if isinstance(payload, dict) and SECRET_LOG_KEYS.intersection(payload):
        event_dict["payload"] = {
            k: (MASK if k in SECRET_LOG_KEYS else v) for k, v in payload.items()
        }
    return event_dict


@contextmanager
def relay_call_context(request_id: str, **fields) -> Iterator[None]:
    """Bind ``request_id`` (and any extra fields) to every log line of one relay call."""
    with structlog.contextvars.bound_contextvars(request_id=request_id, **fields):
        yield


def setup_logging(debug: bool = False, rich_output: bool = True) -> None:
    """
    Configure structured logging for the application.

    Args:
        debug: Enable debug level logging
        rich_output: Use rich formatting for console output, JSON otherwise
    """
    level = logging.DEBUG if debug else logging.INFO

    processors = [
        structlog.contextvars.merge_contextvars,
        add_correlation_id,
        mask_secrets,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.dev.set_exc_info,
    ]

    if rich_output:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True, exception_formatter=structlog.dev.rich_traceback
            )
        )
        handler = RichHandler(console=Console(stderr=True), show_path=False)
        logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]", handlers=[handler])
    else:
        processors.append(structlog.processors.JSONRenderer())
        logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)

    # httpx logs every poll request at INFO; keep it for --debug only
    logging.getLogger("httpx").setLevel(level if debug else logging.WARNING)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
