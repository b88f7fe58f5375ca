"""
Bounded retry policy for link calls.

Wraps tenacity so the reconciler can retry transient failures a fixed
number of times with exponential backoff. The sleep function is injected so
tests run against a fake clock instead of real delays.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import LinkTimeoutError, LinkTransientError

logger = logging.getLogger(__name__)

SleepFunction = Callable[[float], Awaitable[None]]
AttemptCallback = Callable[[int], Awaitable[None]]


class RetryPolicy:
    """
    Fixed-attempt exponential backoff with a per-attempt timeout.

    Only LinkTransientError (including timeouts) is retried; anything else
    propagates on the first occurrence.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_min: float = 0.5,
        backoff_max: float = 4.0,
        multiplier: float = 0.5,
        attempt_timeout: Optional[float] = 5.0,
        sleep: SleepFunction = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self.multiplier = multiplier
        self.attempt_timeout = attempt_timeout
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Any, sleep: SleepFunction = asyncio.sleep) -> "RetryPolicy":
        return cls(
            max_attempts=settings.link_max_attempts,
            backoff_min=settings.link_backoff_min_seconds,
            backoff_max=settings.link_backoff_max_seconds,
            attempt_timeout=settings.link_timeout_seconds,
            sleep=sleep,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.multiplier,
                min=self.backoff_min,
                max=self.backoff_max,
            ),
            retry=retry_if_exception_type(LinkTransientError),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.info(
            f"Link attempt {retry_state.attempt_number} failed ({exc}), "
            f"retrying in {delay:.2f}s"
        )

    async def _with_timeout(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        if self.attempt_timeout is None:
            return await fn(*args)
        try:
            return await asyncio.wait_for(fn(*args), timeout=self.attempt_timeout)
        except asyncio.TimeoutError as e:
            raise LinkTimeoutError(self.attempt_timeout) from e

    async def call(
        self,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
        on_attempt: Optional[AttemptCallback] = None,
    ) -> Any:
        """
        Run fn(*args) under the policy.

        Args:
            fn: Async callable to invoke
            on_attempt: Awaited with the 1-based attempt number before each try

        Returns:
            fn's result from the first successful attempt

        Raises:
            LinkTransientError: the last transient failure once attempts are exhausted
        """
        async for attempt in self._retrying():
            with attempt:
                if on_attempt is not None:
                    await on_attempt(attempt.retry_state.attempt_number)
                return await self._with_timeout(fn, *args)
