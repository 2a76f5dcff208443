"""Database utility functions."""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import OperationalError, InterfaceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Substrings of driver errors worth retrying
TRANSIENT_ERRORS = (
    "database is locked",
    "connection refused",
    "connection reset",
    "connection closed",
    "server closed",
    "timeout",
    "too many clients",
)


def is_transient(error: Exception) -> bool:
    """Return True if a driver error is a lock or connection hiccup."""
    message = str(error).lower()
    return any(fragment in message for fragment in TRANSIENT_ERRORS)


async def retry_on_lock(
    coro_func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 0.1,
    description: str = "database operation",
) -> T:
    """Retry a database operation on transient errors with exponential backoff.

    Args:
        coro_func: Callable returning a fresh coroutine for each attempt
        max_retries: Maximum number of attempts
        base_delay: Base delay in seconds (doubles with each retry)
        description: Label used in log messages

    Raises:
        OperationalError: If all retries fail or the error is not transient
    """
    for attempt in range(max_retries):
        try:
            return await coro_func()
        except (OperationalError, InterfaceError) as e:
            if not is_transient(e) or attempt == max_retries - 1:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                f"Transient error during {description}, retrying in {delay}s "
                f"(attempt {attempt + 1}/{max_retries})"
            )
            await asyncio.sleep(delay)
    raise RuntimeError(f"{description} was not attempted")
