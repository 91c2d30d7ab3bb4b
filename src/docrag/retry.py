"""Bounded exponential-backoff retry for provider calls.

``call_with_retry`` composes any zero-argument callable with a tenacity
retry policy: retry only while *should_retry* says the error is transient,
double the delay each attempt, log before sleeping, and re-raise the last
error once attempts are exhausted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MAX_DELAY_SECONDS = 60.0


def _log_before_sleep(label: str, max_attempts: int) -> Callable[[RetryCallState], None]:
    def _log(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        delay = state.next_action.sleep if state.next_action else 0.0
        logger.warning(
            "%s: attempt %d/%d failed (%s); retrying in %.1fs",
            label,
            state.attempt_number,
            max_attempts,
            exc,
            delay,
        )

    return _log


def call_with_retry(
    fn: Callable[[], T],
    *,
    should_retry: Callable[[BaseException], bool],
    max_retries: int = 3,
    base_delay: float = 1.0,
    label: str = "provider call",
) -> T:
    """Call *fn*, retrying transient failures with exponential backoff.

    Args:
        fn: Zero-argument callable to invoke.
        should_retry: Predicate deciding whether an exception is transient.
        max_retries: Retries after the first attempt (0 disables retrying).
        base_delay: Delay before the first retry in seconds; doubles per attempt.
        label: Name used in log messages.

    Returns:
        Whatever *fn* returns on its first successful attempt.

    Raises:
        The last exception raised by *fn*, unchanged.
    """
    max_attempts = max_retries + 1
    retrying = Retrying(
        retry=retry_if_exception(should_retry),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_delay, max=_MAX_DELAY_SECONDS),
        before_sleep=_log_before_sleep(label, max_attempts),
        reraise=True,
    )
    return retrying(fn)
