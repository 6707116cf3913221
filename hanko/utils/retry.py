"""Retry handling for provider calls."""

from __future__ import annotations

import asyncio
import logging
import random
from enum import Enum
from typing import Awaitable, Callable, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

from ..errors import RateLimited, SourceQueryError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CallState(str, Enum):
    """States of a retried call."""

    PENDING = "pending"
    WAITING = "waiting"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILED = "failed"


class RetryPolicy(BaseModel):
    """Bounds for retrying a single call."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_factor: float = 2.0
    max_delay: float = 60.0
    jitter: float = 0.5


def compute_backoff(
    attempt: int,
    base: float = 1.0,
    factor: float = 2.0,
    jitter: float = 0.5,
    max_delay: Optional[float] = None,
) -> float:
    """Compute exponential backoff with jitter for the given (1-based) attempt."""
    delay = base * factor ** (attempt - 1) + random.uniform(0, jitter)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


class RetryingCall(Generic[T]):
    """Run a provider call as an explicit state machine.

    ``PENDING -> WAITING -> RETRYING -> ... -> SUCCESS | FAILED``

    Only ``SourceQueryError`` subclasses marked ``retryable`` lead to another
    attempt. The call never raises a ``SourceQueryError``; inspect
    :attr:`state`, :attr:`result` and :attr:`error` after :meth:`run`.
    """

    def __init__(
        self,
        call: Callable[[], Awaitable[T]],
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        label: str = "call",
    ) -> None:
        self._call = call
        self._sleep = sleep
        self.policy = policy or RetryPolicy()
        self.label = label
        self.state = CallState.PENDING
        self.attempts = 0
        self.delays: List[float] = []
        self.result: Optional[T] = None
        self.error: Optional[SourceQueryError] = None

    @property
    def finished(self) -> bool:
        return self.state in (CallState.SUCCESS, CallState.FAILED)

    def next_delay(self, error: SourceQueryError) -> Optional[float]:
        """Return the delay before the next attempt, or ``None`` to give up."""
        if not error.retryable or self.attempts >= self.policy.max_attempts:
            return None
        retry_after = error.retry_after if isinstance(error, RateLimited) else None
        if retry_after is not None:
            if retry_after > self.policy.max_delay:
                logger.warning(
                    f"{self.label}: server asks to wait {retry_after:.0f}s, "
                    f"more than the allowed {self.policy.max_delay:.0f}s"
                )
                return None
            return max(retry_after, 0.0)
        return compute_backoff(
            self.attempts,
            base=self.policy.backoff_base,
            factor=self.policy.backoff_factor,
            jitter=self.policy.jitter,
            max_delay=self.policy.max_delay,
        )

    async def _attempt(self) -> None:
        self.attempts += 1
        try:
            self.result = await self._call()
        except SourceQueryError as exc:
            self.error = exc
            delay = self.next_delay(exc)
            if delay is None:
                self.state = CallState.FAILED
            else:
                self.delays.append(delay)
                self.state = CallState.WAITING
        else:
            self.error = None
            self.state = CallState.SUCCESS

    async def run(self) -> "RetryingCall[T]":
        while not self.finished:
            if self.state in (CallState.PENDING, CallState.RETRYING):
                await self._attempt()
            elif self.state is CallState.WAITING:
                delay = self.delays[-1]
                logger.info(
                    f"{self.label}: {self.error.kind}, retrying in {delay:.1f}s "
                    f"(attempt {self.attempts + 1}/{self.policy.max_attempts})"
                )
                await self._sleep(delay)
                self.state = CallState.RETRYING
        return self
