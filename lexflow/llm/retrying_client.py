"""Retry outbound model calls on throttling and report sustained throttling."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_incrementing

from lexflow.config import settings
from lexflow.errors import ThrottledError

logger = logging.getLogger(__name__)

T = TypeVar("T")
SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Linear backoff: the n-th retry waits min(n * backoff_step, backoff_cap)."""

    max_attempts: int
    backoff_step: float
    backoff_cap: float

    @classmethod
    def for_generation(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.generation_max_attempts,
            backoff_step=settings.generation_backoff_step,
            backoff_cap=settings.generation_backoff_cap,
        )

    @classmethod
    def for_embedding(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.embed_max_attempts,
            backoff_step=settings.embed_backoff_step,
            backoff_cap=settings.embed_backoff_cap,
        )

    def retrying(self, sleep: SleepFn = asyncio.sleep) -> AsyncRetrying:
        """Build a tenacity controller that only retries ThrottledError."""
        return AsyncRetrying(
            retry=retry_if_exception_type(ThrottledError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.backoff_step, increment=self.backoff_step, max=self.backoff_cap),
            sleep=sleep,
            reraise=True,
        )


class RetryingModelClient:
    """Runs one outbound call with throttle-aware retries.

    Once a single call has been throttled ``throttle_threshold`` times,
    ``on_throttle`` is invoked exactly once for that call, whatever its outcome.
    Errors other than ThrottledError propagate on the first attempt.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        throttle_threshold: Optional[int] = None,
        on_throttle: Optional[Callable[[], None]] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.policy = policy or RetryPolicy.for_generation()
        self.throttle_threshold = throttle_threshold or settings.throttle_signal_threshold
        self.on_throttle = on_throttle
        self._sleep = sleep

    async def call(self, operation: Callable[[], Awaitable[T]], label: str = "model call") -> T:
        throttles = 0
        signalled = False
        async for attempt in self.policy.retrying(self._sleep):
            with attempt:
                number = attempt.retry_state.attempt_number
                try:
                    return await operation()
                except ThrottledError as exc:
                    throttles += 1
                    logger.warning("%s throttled (attempt %s/%s)", label, number, self.policy.max_attempts)
                    if throttles >= self.throttle_threshold and not signalled:
                        signalled = True
                        self._signal(label)
                    raise ThrottledError(
                        f"{label} throttled after {number} attempt(s)", attempt=number, cause=exc.cause or exc
                    ) from exc
        raise RuntimeError("retry loop exited without a result")  # pragma: no cover

    def _signal(self, label: str) -> None:
        if self.on_throttle is None:
            return
        logger.warning("Sustained throttling on %s; signalling queue mode", label)
        self.on_throttle()
