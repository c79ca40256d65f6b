"""Retry policy for event-source fetches.

Only the fetch step is retried: apply and checkpoint run at most once per
page per cycle. Delays grow as ``base * multiplier ** (attempt - 1)`` and
are capped at ``maximum``; with the defaults that is 1s, then 2s.

Example:
    >>> retrying = fetch_retrying(attempts=3)
    >>> async for attempt in retrying:
    ...     with attempt:
    ...         page = await source.fetch_events(contract_id, after, limit)
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..exceptions import SourceError
from ..logging_config import get_logger

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


def _log_retry_attempt(retry_state: RetryCallState) -> None:
    """Log a failed fetch attempt before backing off."""
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    next_wait = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        "Fetch attempt %d failed (%s), retrying in %.1fs",
        retry_state.attempt_number,
        exception,
        next_wait,
    )


def fetch_retrying(
    attempts: int = 3,
    base: float = 1.0,
    multiplier: float = 2.0,
    maximum: float = 10.0,
    sleep: Sleep = asyncio.sleep,
) -> AsyncRetrying:
    """Build the retry controller for one contract's fetch.

    Args:
        attempts: Total attempts, including the first one.
        base: Delay before the first retry.
        multiplier: Factor applied to the delay for each further retry.
        maximum: Cap on any single delay.
        sleep: Awaitable sleep; tests pass a recorder.

    Only ``SourceError`` is retried. After the last attempt the final
    ``SourceError`` is re-raised.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base, exp_base=multiplier, max=maximum),
        retry=retry_if_exception_type(SourceError),
        before_sleep=_log_retry_attempt,
        reraise=True,
        sleep=sleep,
    )
