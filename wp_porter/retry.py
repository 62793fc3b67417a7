"""Bounded retry over operations that report failure as a value."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger("wp_porter")

T = TypeVar("T")

MAX_BACKOFF_SECONDS = 30.0


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or the error that prevented producing one."""

    value: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException) -> "Outcome[T]":
        return cls(error=error)

    def with_attempts(self, attempts: int) -> "Outcome[T]":
        return Outcome(value=self.value, error=self.error, attempts=attempts)


def _is_failure(outcome: object) -> bool:
    return isinstance(outcome, Outcome) and not outcome.ok


def _last_outcome(retry_state: RetryCallState) -> object:
    return retry_state.outcome.result()


async def retry_async(
    operation: Callable[[], Awaitable[Outcome[T]]],
    attempts: int,
    base_delay: float = 1.0,
    label: str = "operation",
) -> Outcome[T]:
    """Run ``operation`` until it succeeds or ``attempts`` are used up.

    Failed outcomes are retried with exponential backoff
    (``base_delay * 2 ** (attempt - 1)``). The last outcome is returned when
    attempts run out. Exceptions raised by ``operation`` are not retried.
    """
    attempts = max(1, attempts)
    calls = 0

    def _log_retry(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome.result()
        logger.warning(
            "%s failed (attempt %d/%d): %s; retrying in %.1fs",
            label,
            retry_state.attempt_number,
            attempts,
            outcome.error,
            retry_state.next_action.sleep if retry_state.next_action else 0.0,
        )

    async def _counted() -> Outcome[T]:
        nonlocal calls
        calls += 1
        return await operation()

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base_delay, min=0, max=MAX_BACKOFF_SECONDS),
        retry=retry_if_result(_is_failure),
        before_sleep=_log_retry,
        retry_error_callback=_last_outcome,
    )
    outcome = await retrying(_counted)
    return outcome.with_attempts(calls)
