import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .errors import SoundCloudError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Fraction of the exponential delay added as random jitter.
JITTER_FRACTION = 0.1


@dataclass(frozen=True)
class RetryEvent:
    """One retry decision, reported to the debug sink before sleeping."""

    attempt: int
    delay_ms: float
    status: Optional[int]

    def __str__(self) -> str:
        return f"retry attempt={self.attempt} delay_ms={self.delay_ms:.0f} status={self.status}"


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    retry_base_delay_ms: int = 1000
    on_debug: Optional[Callable[[RetryEvent], None]] = None

    def __post_init__(self) -> None:
        if int(self.max_retries) < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if int(self.retry_base_delay_ms) < 0:
            raise ValueError(f"retry_base_delay_ms must be >= 0, got {self.retry_base_delay_ms}")


DEFAULT_RETRY_POLICY = RetryPolicy()


def is_retryable(exc: BaseException) -> bool:
    """429 and 5xx API errors are retryable; everything else is terminal."""

    if isinstance(exc, SoundCloudError):
        return exc.is_rate_limited or exc.is_server_error
    return False


def compute_delay_ms(
    exc: BaseException,
    attempt: int,
    policy: RetryPolicy,
    *,
    rand: Callable[[], float] = random.random,
) -> float:
    """Server hint wins (no jitter); otherwise base * 2^attempt plus up to 10% jitter."""

    hint = getattr(exc, "retry_after", None)
    if hint is not None:
        return hint * 1000.0

    base = float(policy.retry_base_delay_ms) * (2 ** attempt)
    return base + base * JITTER_FRACTION * rand()


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    *,
    should_retry: Callable[[BaseException], bool] = is_retryable,
    delay_ms: Callable[[BaseException, int, RetryPolicy], float] = compute_delay_ms,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> T:
    """Run ``operation`` up to ``policy.max_retries + 1`` times.

    Exceptions rejected by ``should_retry`` propagate immediately and
    unchanged. When the budget is exhausted the last exception is re-raised.
    """

    sleep = sleep or asyncio.sleep
    max_retries = int(policy.max_retries)
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if not should_retry(e) or attempt >= max_retries:
                raise

            delay = delay_ms(e, attempt, policy)
            event = RetryEvent(attempt=attempt, delay_ms=delay, status=getattr(e, "status", None))
            logger.warning("SoundCloud request failed (status %s), %s", event.status, event)
            if policy.on_debug is not None:
                policy.on_debug(event)

            await sleep(delay / 1000.0)
            attempt += 1
