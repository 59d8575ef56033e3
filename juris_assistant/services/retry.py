"""Bounded retry with linear backoff for upstream calls."""
import logging
import time
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DeadlineExceeded(Exception):
    """The overall time budget ran out before the call could succeed."""


def linear_backoff(base_seconds: float) -> Callable[[int], float]:
    """Delay of `attempt * base_seconds` after the given failed attempt."""
    return lambda attempt: attempt * base_seconds


def call_with_retry(
    func: Callable[[Optional[float]], T],
    max_attempts: int,
    is_retryable: Callable[[Exception], bool],
    backoff: Callable[[int], float],
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    deadline_seconds: Optional[float] = None,
) -> T:
    """
    Call `func` until it succeeds or the attempt budget is spent.

    `func` receives the seconds left before the deadline (or None when
    unbounded) so it can pass them on as a request timeout.

    Args:
        func: Call to attempt
        max_attempts: Total attempts, including the first
        is_retryable: Whether a raised exception may be retried
        backoff: Seconds to wait after failed attempt N (1-based)
        sleep: Sleep function, injected for tests
        clock: Monotonic clock, injected for tests
        deadline_seconds: Overall budget covering every attempt and wait

    Returns:
        Whatever `func` returns

    Raises:
        The last exception from `func` when it is not retryable or attempts
        run out, or DeadlineExceeded when the budget is spent first.
    """
    started = clock()
    attempt = 0

    while True:
        remaining = None
        if deadline_seconds is not None:
            remaining = deadline_seconds - (clock() - started)
            if remaining <= 0:
                raise DeadlineExceeded(f"Deadline of {deadline_seconds}s exceeded")

        attempt += 1
        try:
            return func(remaining)
        except Exception as e:
            if not is_retryable(e) or attempt >= max_attempts:
                raise

            delay = backoff(attempt)
            if deadline_seconds is not None:
                left = deadline_seconds - (clock() - started)
                if delay >= left:
                    raise DeadlineExceeded(
                        f"Retry after {delay}s would overrun the {deadline_seconds}s deadline"
                    ) from e

            logger.warning(
                f"Attempt {attempt}/{max_attempts} failed with {type(e).__name__}, "
                f"retrying in {delay}s"
            )
            sleep(delay)
