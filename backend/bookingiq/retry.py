"""
Timeout and retry helper for calls to external collaborators
(text-generation service, relational store).
"""
import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_incrementing

logger = structlog.get_logger()

T = TypeVar("T")


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    timeout: float,
    attempts: int = 2,
    backoff: float = 0.5,
    is_transient: Callable[[BaseException], bool] = lambda exc: False,
    label: str = "call",
) -> T:
    """
    Await ``operation()`` under a per-attempt timeout.

    Timeouts and failures accepted by ``is_transient`` are retried with a
    linear backoff (``backoff``, ``2 * backoff``, ...) until ``attempts`` is
    exhausted; anything else is raised immediately. Cancellation is never
    intercepted.
    """
    def should_retry(exc: BaseException) -> bool:
        return isinstance(exc, asyncio.TimeoutError) or is_transient(exc)

    def log_retry(state: RetryCallState) -> None:
        logger.warning(
            "Transient failure, retrying",
            call=label,
            attempt=state.attempt_number,
            delay_s=state.next_action.sleep if state.next_action else 0.0,
            error=repr(state.outcome.exception()),
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_incrementing(start=backoff, increment=backoff),
        retry=retry_if_exception(should_retry),
        before_sleep=log_retry,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await asyncio.wait_for(operation(), timeout=timeout)


def describe(exc: BaseException) -> str:
    """Short human-readable error description for logs and warnings."""
    if isinstance(exc, asyncio.TimeoutError):
        return "timed out"
    text = str(exc)
    return text if text else exc.__class__.__name__
