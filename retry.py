"""
Local retry runner for the CLI.

Queue backends can ignore this module entirely and read the error
taxonomy instead: retry on RetryableError (honouring `retry_after`),
never on FatalError.
"""

import logging
import time
from collections.abc import Callable, Iterator
from random import SystemRandom
from typing import TypeVar

from errors import RetryableError

log = logging.getLogger(__name__)

T = TypeVar("T")


def exponential_backoff(
    *,
    max_attempts: int = 3,
    base_delay: float = 2.0,
    factor: float = 2.0,
    max_delay: float = 60.0,
    jitter: float = 0.25,
) -> Iterator[tuple[int, float]]:
    """Yield (attempt, delay_seconds) pairs for exponential backoff with jitter."""
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if base_delay <= 0:
        raise ValueError("base_delay must be > 0")
    if factor < 1:
        raise ValueError("factor must be >= 1")
    if max_delay <= 0:
        raise ValueError("max_delay must be > 0")
    if jitter < 0:
        raise ValueError("jitter must be >= 0")

    rng = SystemRandom()
    delay = base_delay
    for attempt in range(1, max_attempts + 1):
        jitter_offset = rng.uniform(0, delay * jitter) if jitter > 0 else 0.0
        sleep_for = min(delay + jitter_offset, max_delay)
        yield attempt, sleep_for
        delay = min(delay * factor, max_delay)


def run_with_retry(
    fn: Callable[[], T],
    *,
    max_attempts: int = 3,
    base_delay: float = 2.0,
    max_delay: float = 60.0,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "task",
) -> T:
    """
    Call `fn` until it succeeds or the attempt budget is spent.

    Only RetryableError is retried. A server-provided `retry_after` wins
    over the computed backoff when it is longer. Everything else
    (FatalError included) propagates on the first raise.
    """
    last_error: RetryableError | None = None

    for attempt, delay in exponential_backoff(
        max_attempts=max_attempts, base_delay=base_delay, max_delay=max_delay,
    ):
        try:
            return fn()
        except RetryableError as e:
            last_error = e
            if attempt == max_attempts:
                break
            wait = max(delay, e.retry_after or 0.0)
            log.warning(
                f"{label} failed (attempt {attempt}/{max_attempts}): {e}. "
                f"Retrying in {wait:.1f}s"
            )
            sleep(wait)

    log.error(f"{label} gave up after {max_attempts} attempts: {last_error}")
    assert last_error is not None
    raise last_error
