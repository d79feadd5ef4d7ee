"""Bounded retry with exponential backoff around a single provider call.

``AddressNotFoundError`` is propagated on the first occurrence: the fallback
resolver moves to its next tier instead of spending retries on an address the
provider cannot match. ``RateLimitedError`` and ``GeocodingProviderError`` are
retried up to ``max_attempts`` times with ``base_delay_ms * 2 ** (attempt - 1)``
between attempts; the last error is re-raised once attempts run out.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from loguru import logger

from facility_geocoder.lib.geocoder.base import (
    AddressNotFoundError,
    AttemptOutcome,
    GeocodeAttempt,
    GeocodingProviderError,
    ResolutionTrace,
    classify_error,
)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 1000

Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt ceiling and backoff base for one tier."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            msg = f"max_attempts must be >= 1, got {self.max_attempts}"
            raise ValueError(msg)
        if self.base_delay_ms < 0:
            msg = f"base_delay_ms must be >= 0, got {self.base_delay_ms}"
            raise ValueError(msg)

    def delay_seconds(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        return self.base_delay_ms * (2 ** (attempt - 1)) / 1000.0


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    provider: str = "unknown",
    variant: str = "unknown",
    trace: ResolutionTrace | None = None,
    sleep: Sleeper = asyncio.sleep,
) -> T:
    """Run ``operation`` with bounded retries and exponential backoff.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        policy: Retry policy (defaults: 3 attempts, 1000 ms base delay).
        provider: Provider name, for attempt logging.
        variant: Address variant / tier name, for attempt logging.
        trace: Optional trace that receives one GeocodeAttempt per call.
        sleep: Awaitable sleep used between attempts (injectable for tests).

    Returns:
        The operation's result.

    Raises:
        AddressNotFoundError: Immediately, without consuming further attempts.
        GeocodingProviderError: The last transient error once attempts are exhausted.
    """
    policy = policy or RetryPolicy()
    attempt = 1

    while True:
        started = time.perf_counter()
        try:
            result = await operation()
        except AddressNotFoundError as e:
            _record(trace, provider, variant, attempt, started, AttemptOutcome.NOT_FOUND, str(e))
            raise
        except GeocodingProviderError as e:
            _record(trace, provider, variant, attempt, started, classify_error(e), str(e))
            if attempt >= policy.max_attempts:
                logger.warning(f"{provider} gave up on {variant} after {attempt} attempts: {e}")
                raise
        else:
            _record(trace, provider, variant, attempt, started, AttemptOutcome.SUCCESS)
            return result

        delay = policy.delay_seconds(attempt)
        logger.debug(f"{provider} retry {attempt}/{policy.max_attempts} for {variant} in {delay:.2f}s")
        await sleep(delay)
        attempt += 1


def _record(
    trace: ResolutionTrace | None,
    provider: str,
    variant: str,
    attempt: int,
    started: float,
    outcome: AttemptOutcome,
    error: str | None = None,
) -> None:
    entry = GeocodeAttempt(
        provider=provider,
        variant=variant,
        attempt=attempt,
        elapsed_ms=(time.perf_counter() - started) * 1000.0,
        outcome=outcome,
        error=error,
    )
    logger.bind(json_output=True, **entry.as_log_fields()).info("geocode_attempt")
    if trace is not None:
        trace.record(entry)
