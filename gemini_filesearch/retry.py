"""Bounded exponential backoff for remote calls.

retry_with_backoff runs an async unit of work up to ``max_attempts`` times.
Every failure is classified; only retryable failures get another attempt,
and whatever finally escapes is a ClassifiedError with the raw failure as
its ``__cause__``.

Delay Schedule
==============

Delay before attempt n+1 = ``delays_ms[n-1]`` (last entry reused once the
schedule runs out) + uniform jitter in ``[0, jitter_ms)``::

    attempt 1 ──fail──> 500ms + j ──> attempt 2 ──fail──> 1000ms + j ──> attempt 3 ──fail──> raise

No delay follows the final attempt or a non-retryable failure. Timing is
random, attempt count is not.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import ParamSpec, TypeAlias, TypeVar

import tenacity
from tenacity.wait import wait_base

from gemini_filesearch.classifier import classify, is_retryable
from gemini_filesearch.errors import ClassifiedError

__all__ = [
    'DEFAULT_DELAYS_MS',
    'DEFAULT_RETRY_POLICY',
    'RetryObserver',
    'RetryPolicy',
    'retry_with_backoff',
    'with_backoff',
]

logger = logging.getLogger(__name__)

DEFAULT_DELAYS_MS: Sequence[int] = (500, 1000, 2000)  # 0.5s -> 1s -> 2s
DEFAULT_JITTER_MS = 200

RetryObserver: TypeAlias = Callable[[int, BaseException], None]

T = TypeVar('T')
P = ParamSpec('P')


@dataclass(frozen=True)
class RetryPolicy:
    """How many attempts to make and how long to wait between them.

    The schedule length need not match ``max_attempts - 1``; when attempts
    outrun the schedule, the last delay is reused.
    """

    max_attempts: int = 3
    delays_ms: Sequence[int] = DEFAULT_DELAYS_MS
    on_retry: RetryObserver | None = None
    jitter_ms: int = DEFAULT_JITTER_MS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f'max_attempts must be positive, got {self.max_attempts}')
        if not self.delays_ms:
            raise ValueError('delays_ms must not be empty')
        if any(delay < 0 for delay in self.delays_ms):
            raise ValueError(f'delays_ms must be non-negative, got {list(self.delays_ms)}')
        if self.jitter_ms < 0:
            raise ValueError(f'jitter_ms must be non-negative, got {self.jitter_ms}')

    def base_delay_ms(self, attempt: int) -> int:
        """Scheduled delay after the given (1-indexed) failed attempt."""
        index = min(attempt - 1, len(self.delays_ms) - 1)
        return self.delays_ms[index]


DEFAULT_RETRY_POLICY = RetryPolicy()


class wait_schedule(wait_base):
    """Wait strategy reading from a RetryPolicy delay schedule."""

    def __init__(self, policy: RetryPolicy) -> None:
        self._policy = policy

    def __call__(self, retry_state: tenacity.RetryCallState) -> float:
        return self._policy.base_delay_ms(retry_state.attempt_number) / 1000


def should_retry(exc: BaseException) -> bool:
    """Retry application failures that are retryable by classification or status code.

    System exceptions (CancelledError, KeyboardInterrupt) never qualify.
    """
    if not isinstance(exc, Exception):
        return False
    return classify(exc).retryable or is_retryable(exc)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
) -> T:
    """Run ``operation`` under ``policy``, raising a ClassifiedError on failure.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        policy: Retry policy. Defaults to 3 attempts at 500/1000/2000ms.

    Returns:
        The operation's result from the first successful attempt.

    Raises:
        ClassifiedError: After the final attempt, or immediately on a
            non-retryable failure.
    """
    policy = policy or DEFAULT_RETRY_POLICY

    retrying = tenacity.AsyncRetrying(
        retry=tenacity.retry_if_exception(should_retry),
        stop=tenacity.stop_after_attempt(policy.max_attempts),
        wait=wait_schedule(policy) + tenacity.wait_random(0, policy.jitter_ms / 1000),
        before_sleep=functools.partial(_before_sleep, policy),
        sleep=asyncio.sleep,
        reraise=True,
    )

    # tenacity awaits only coroutine functions, not factories returning awaitables
    async def attempt() -> T:
        return await operation()

    try:
        return await retrying(attempt)
    except ClassifiedError:
        raise
    except Exception as e:
        raise classify(e) from e


def with_backoff(
    policy: RetryPolicy | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorate an async function so every call runs through retry_with_backoff."""

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await retry_with_backoff(lambda: func(*args, **kwargs), policy)

        return wrapper

    return decorator


def _before_sleep(policy: RetryPolicy, retry_state: tenacity.RetryCallState) -> None:
    """Log the failed attempt and notify the policy observer before waiting."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if exc is None:
        return

    classified = classify(exc)
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        f'[RETRY] attempt {retry_state.attempt_number}/{policy.max_attempts} failed: '
        f'{classified.kind.value}: {classified.message} (retrying in {round(delay * 1000)}ms)'
    )

    if policy.on_retry is not None:
        policy.on_retry(retry_state.attempt_number, exc)
