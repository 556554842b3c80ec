"""
Reliability helpers for the GreenHost relay client.

Provides operation tracking for relay calls.
"""

import time
from functools import wraps
from typing import Callable

import structlog

logger = structlog.get_logger(__name__)


def track_operation(operation_name: str):
    """
    Decorator to log start, duration and outcome of an async relay operation.

    Args:
        operation_name: Name of the operation for logging
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.monotonic()

            logger.info("Relay operation started", operation=operation_name)

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    "Relay operation failed",
                    operation=operation_name,
                    duration_seconds=round(time.monotonic() - start_time, 3),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            logger.info(
                "Relay operation completed",
                operation=operation_name,
                duration_seconds=round(time.monotonic() - start_time, 3),
                success=getattr(result, "success", None),
            )
            return result

        return wrapper

    return decorator
