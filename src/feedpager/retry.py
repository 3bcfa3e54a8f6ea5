"""Bounded retry with exponential backoff for recoverable feed errors."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from feedpager.errors import FeedPagerError

log = structlog.get_logger()

T = TypeVar("T")


def _is_recoverable(exc: BaseException) -> bool:
    return isinstance(exc, FeedPagerError) and exc.recoverable


def _log_retry(label: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        log.info(
            "retry_scheduled",
            label=label,
            attempt=retry_state.attempt_number,
            code=getattr(exc, "code", None),
            delay_seconds=retry_state.next_action.sleep if retry_state.next_action else 0,
        )

    return before_sleep


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    backoff_ms: int,
    label: str = "operation",
) -> T:
    """Run ``operation`` up to ``attempts`` times.

    Only ``FeedPagerError`` with ``recoverable=True`` is retried; anything
    else propagates on the first failure. The wait before retry ``n`` (1-based)
    is ``backoff_ms * 2 ** (n - 1)``. The last error is re-raised as is.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=backoff_ms / 1000),
        retry=retry_if_exception(_is_recoverable),
        before_sleep=_log_retry(label),
        reraise=True,
    )
    return await retrying(operation)
