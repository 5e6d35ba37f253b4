import logging
import random
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError

from slotbook.errors import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Lock contention and dropped connections; anything else is a real failure
_RETRYABLE_ERROR_SNIPPETS = (
    "database is locked",
    "database is busy",
    "server closed the connection",
    "ssl connection has been closed unexpectedly",
    "could not serialize access",
    "deadlock detected",
    "canceling statement due to statement timeout",
)


def is_retryable_store_error(exc: OperationalError) -> bool:
    message = str(exc).lower()
    return any(snippet in message for snippet in _RETRYABLE_ERROR_SNIPPETS)


def retry_delay(attempt: int) -> float:
    base = 0.05 * (2 ** (attempt - 1))
    return base + random.uniform(0, 0.02 * attempt)


def with_store_retry(op_name: str, func: Callable[[], T], *, max_attempts: int = 3) -> T:
    """
    Run one whole transaction attempt, retrying transient store failures.

    `func` must roll back its own transaction before raising so each retry
    starts clean. Business errors pass straight through.
    """
    attempt = 1
    while True:
        try:
            return func()
        except OperationalError as exc:
            if not is_retryable_store_error(exc):
                raise
            if attempt >= max_attempts:
                logger.error(
                    "Transient store failure, retries exhausted",
                    extra={"event": "store_retry_exhausted", "op": op_name, "attempts": attempt},
                )
                raise TransientStoreError(op_name) from exc

            delay = retry_delay(attempt)
            logger.warning(
                "Transient store failure detected, retrying",
                extra={
                    "event": "store_retry",
                    "op": op_name,
                    "attempt": attempt,
                    "delay": delay,
                    "error": str(exc),
                },
            )
            time.sleep(delay)
            attempt += 1
