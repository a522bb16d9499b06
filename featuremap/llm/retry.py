"""Retry wrapper for reasoning-service calls.

Provides:
- classify_failure(): maps an exception to rate-limit, malformed or fatal
- backoff_delay(): capped exponential backoff with jitter
- RetryPolicy: per call-site retry bound, malformed-output retries and fallback
"""

from __future__ import annotations

import asyncio
import json
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

import anthropic

from ..logging import get_logger

T = TypeVar("T")
logger = get_logger("llm.retry")


class FailureKind(Enum):
    RATE_LIMIT = "rate_limit"
    MALFORMED = "malformed"
    FATAL = "fatal"


class MalformedResponseError(ValueError):
    """Raised when the service output does not have the expected structure."""


def classify_failure(exc: BaseException) -> FailureKind:
    """Return how the retry policy should treat ``exc``."""
    if isinstance(exc, anthropic.RateLimitError):
        return FailureKind.RATE_LIMIT
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(exc, "status", None)
    if status == 429:
        return FailureKind.RATE_LIMIT
    if isinstance(exc, (MalformedResponseError, json.JSONDecodeError)):
        return FailureKind.MALFORMED
    return FailureKind.FATAL


def backoff_delay(
    attempt: int,
    *,
    base_delay: float = 2.0,
    max_jitter: float = 1.0,
    max_delay: float = 30.0,
    rng: Callable[[], float] = random.random,
) -> float:
    """Seconds to wait before retry ``attempt`` (1-based)."""
    return min((2 ** attempt) * base_delay + rng() * max_jitter, max_delay)


@dataclass
class RetryPolicy:
    """Wraps one fallible service call with bounded retries.

    ``max_retries`` counts retries, so a call that keeps failing with a
    retryable error is attempted ``max_retries + 1`` times.
    """

    max_retries: int = 3
    retry_malformed: bool = False
    base_delay: float = 2.0
    max_jitter: float = 1.0
    max_delay: float = 30.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)
    rng: Callable[[], float] = field(default=random.random, repr=False)

    def delay_for(self, attempt: int) -> float:
        return backoff_delay(
            attempt,
            base_delay=self.base_delay,
            max_jitter=self.max_jitter,
            max_delay=self.max_delay,
            rng=self.rng,
        )

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        label: str,
        fallback: Optional[Callable[[Exception], T]] = None,
    ) -> T:
        """Run ``operation`` until it succeeds, is fatal, or the bound is reached.

        When ``fallback`` is given, an unrecoverable error is logged and the
        fallback's value is returned instead of raising.
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as exc:
                kind = classify_failure(exc)
                if kind is FailureKind.RATE_LIMIT and attempt < self.max_retries:
                    attempt += 1
                    delay = self.delay_for(attempt)
                    logger.warning(
                        "[%s] API rate limit hit (429). Retrying in %ds... (attempt %d/%d)",
                        label,
                        round(delay),
                        attempt,
                        self.max_retries,
                    )
                    await self.sleep(delay)
                    continue
                if (
                    kind is FailureKind.MALFORMED
                    and self.retry_malformed
                    and attempt < self.max_retries
                ):
                    attempt += 1
                    logger.debug(
                        "[%s] Malformed response, retrying (attempt %d/%d): %s",
                        label,
                        attempt,
                        self.max_retries,
                        exc,
                    )
                    continue
                if fallback is None:
                    raise
                logger.warning(
                    "[%s] Giving up after %d attempt(s), using fallback: %s",
                    label,
                    attempt + 1,
                    exc,
                )
                return fallback(exc)


__all__ = [
    "FailureKind",
    "MalformedResponseError",
    "RetryPolicy",
    "backoff_delay",
    "classify_failure",
]
