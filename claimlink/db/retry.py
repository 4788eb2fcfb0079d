"""Retry helper for store operations.

Wraps whole async operations with tenacity so a TransientStoreError
re-runs the operation from the top. Claim and unclaim re-read record
state on every attempt, which keeps retries safe.
"""

import functools
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from claimlink.errors import TransientStoreError

logger = structlog.get_logger()

P = ParamSpec("P")
T = TypeVar("T")


def _log_retry(retry_state) -> None:
    err = retry_state.outcome.exception() if retry_state.outcome else None
    logger.info(
        "retrying after transient store error",
        attempt=retry_state.attempt_number,
        error=str(err) if err else None,
    )


def retry_transient(
    attempts: int = 3,
    min_wait: float = 0.1,
    max_wait: float = 2.0,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator retrying an async operation on TransientStoreError.

    The last TransientStoreError is re-raised when attempts run out.

    Args:
        attempts: Total attempts including the first
        min_wait: Minimum backoff in seconds
        max_wait: Maximum backoff in seconds
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
                retry=retry_if_exception_type(TransientStoreError),
                before_sleep=_log_retry,
                reraise=True,
            ):
                with attempt:
                    return await func(*args, **kwargs)
            raise AssertionError("unreachable")  # pragma: no cover

        return wrapper

    return decorator
