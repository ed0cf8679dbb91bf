from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


class BackoffStrategy:
    """Exponential backoff with jitter for retry delays.

    Computes sleep duration as base * 2^(attempt-1) plus random jitter,
    capped at a configurable maximum. A base of zero means "retry immediately"."""

    def __init__(self, base_seconds: float = 0.5, max_seconds: float = 10.0) -> None:
        self._base = base_seconds
        self._max = max_seconds

    def get_sleep(self, attempt: int, error_type: Optional[str] = None) -> float:
        """Calculate the backoff sleep duration in seconds for a given retry attempt."""
        exp = min(self._max, self._base * (2 ** max(attempt - 1, 0)))
        if exp <= 0:
            return 0.0
        jitter = random.uniform(0, exp * 0.1)
        return exp + jitter


class RetryPolicy:
    """Bounded retry: at most ``attempts`` calls, sleeping per ``backoff`` in between.

    Only exceptions listed in ``retry_on`` are retried; anything in ``give_up_on``
    is re-raised at once even if it also matches ``retry_on``. The last
    exception propagates to the caller once the attempts are spent."""

    def __init__(
        self,
        attempts: int = 2,
        backoff: Optional[BackoffStrategy] = None,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        give_up_on: Tuple[Type[BaseException], ...] = (),
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.attempts = attempts
        self._backoff = backoff or BackoffStrategy(base_seconds=0.0)
        self._retry_on = retry_on
        self._give_up_on = give_up_on
        self._sleep = sleep

    def call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn(*args, **kwargs)
            except self._give_up_on:
                raise
            except self._retry_on as exc:
                if attempt >= self.attempts:
                    raise
                sleep_s = self._backoff.get_sleep(attempt, type(exc).__name__)
                logger.debug("attempt %d failed (%s), retrying in %.2fs", attempt, exc, sleep_s)
                if sleep_s > 0:
                    self._sleep(sleep_s)
